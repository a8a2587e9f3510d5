"""
Mapped Image and Bounded View
==============================

Read-only memory mapping of a binary plus a bounds-checked view over the
mapped bytes.  Every offset the ELF walkers compute from file-controlled
fields goes through :class:`ImageView` before any byte is read, so a
truncated or hostile file can only ever produce a :class:`BoundsError`,
never a read outside the mapping.

The exception hierarchy rooted at :class:`ImageError` is shared by the
parsers; each class carries the :class:`DiagnosticKind` the resolver
reports for it.
"""

from __future__ import annotations

import mmap
import os
import struct
from contextlib import contextmanager
from typing import Iterator, Union

from fldd.core.models import DiagnosticKind

_Buffer = Union[bytes, bytearray, mmap.mmap]


# ========================== Exceptions =====================================


class ImageError(Exception):
    """Base class for recoverable failures while scanning one binary."""

    kind: DiagnosticKind = DiagnosticKind.MALFORMED

    def __init__(self, path: str, message: str) -> None:
        super().__init__(message)
        self.path = path


class InaccessibleError(ImageError):
    kind = DiagnosticKind.INACCESSIBLE


class UnmappableError(ImageError):
    kind = DiagnosticKind.UNMAPPABLE


class NotElfError(ImageError):
    kind = DiagnosticKind.NOT_ELF


class UnsupportedElfError(ImageError):
    kind = DiagnosticKind.UNSUPPORTED


class NoStringTableError(ImageError):
    kind = DiagnosticKind.NO_STRING_TABLE


class BoundsError(ImageError):
    """A file-controlled offset points outside the mapped region.

    Attributes:
        field: Name of the structure or pointer that failed validation.
    """

    kind = DiagnosticKind.BAD_POINTER

    def __init__(self, path: str, field: str) -> None:
        super().__init__(path, f"bad pointer {field} for {path}")
        self.field = field


# ========================== Validator ======================================


def valid(ptr: int, base: int, end: int) -> bool:
    """Return ``True`` if *ptr* lies within ``[base, end]``."""
    return base <= ptr <= end


class ImageView:
    """Bounds-checked, read-only view over a binary's bytes.

    ``base`` is always 0 and ``end`` the buffer length; offsets are file
    offsets.  Reads of a range succeed only when the whole range lies in
    the buffer.

    Args:
        data: Mapped file or any bytes-like buffer.
        path: File name used in diagnostics.
    """

    def __init__(self, data: _Buffer, path: str = "<memory>") -> None:
        self._data = data
        self._path = path

    @property
    def path(self) -> str:
        return self._path

    @property
    def base(self) -> int:
        return 0

    @property
    def end(self) -> int:
        return len(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def valid(self, offset: int) -> bool:
        return valid(offset, self.base, self.end)

    def check(self, offset: int, field: str) -> int:
        """Validate a single pointer, raising :class:`BoundsError` if invalid."""
        if not self.valid(offset):
            raise BoundsError(self._path, field)
        return offset

    def require(self, offset: int, size: int, field: str) -> None:
        """Validate that ``[offset, offset + size)`` lies inside the image."""
        if size < 0 or not self.valid(offset) or offset + size > self.end:
            raise BoundsError(self._path, field)

    def read(self, offset: int, size: int, field: str) -> bytes:
        self.require(offset, size, field)
        return bytes(self._data[offset:offset + size])

    def unpack(self, fmt: str, offset: int, field: str) -> tuple:
        """Unpack a :mod:`struct` at *offset* after validating its extent."""
        self.require(offset, struct.calcsize(fmt), field)
        return struct.unpack_from(fmt, self._data, offset)

    def cstring(self, offset: int, field: str) -> str:
        """Read a NUL-terminated string starting at *offset*.

        The terminator must lie inside the image; a string that runs off
        the end is reported as a bad pointer.
        """
        self.check(offset, field)
        terminator = self._data.find(b"\x00", offset)
        if terminator == -1:
            raise BoundsError(self._path, field)
        return os.fsdecode(bytes(self._data[offset:terminator]))


# ========================== Mapper =========================================


@contextmanager
def open_and_map(path: str) -> Iterator[ImageView]:
    """Map *path* read-only for the duration of the ``with`` block.

    The mapping and the descriptor are released on every exit path.

    Raises:
        InaccessibleError: The file cannot be opened for reading.
        UnmappableError: The file cannot be stat'ed or mapped (empty
            files and directories included).
    """
    try:
        fd = os.open(path, os.O_RDONLY)
    except OSError as exc:
        raise InaccessibleError(
            path, f"cannot open {path}, skipping... ({exc.strerror})"
        ) from exc

    try:
        try:
            size = os.fstat(fd).st_size
            mapped = mmap.mmap(fd, size, access=mmap.ACCESS_READ)
        except (OSError, ValueError) as exc:
            raise UnmappableError(
                path, f"cannot map {path}, skipping... ({exc})"
            ) from exc
        try:
            yield ImageView(mapped, path)
        finally:
            mapped.close()
    finally:
        os.close(fd)
