"""
Magic Number Identification of Non-ELF Inputs
===============================================

A loader path or a library name can resolve to something that is not an
ELF object: a GNU ld linker script (``libc.so`` on most distributions),
a shell wrapper, a static archive.  Those files are skipped, and the
diagnostic names what was found using the signatures below.

References:
    - Gary Kessler's File Signatures Table.
      https://www.garykessler.net/library/file_sigs.html
    - ``file(1)`` command magic database. https://github.com/file/file
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

ELF_MAGIC: bytes = b"\x7fELF"

# Bytes sampled from the start of a file for identification
SAMPLE_SIZE: int = 512


@dataclass(frozen=True, slots=True)
class _Signature:
    """Bytes *magic* at *offset* identify a file as *description*."""
    magic: bytes
    offset: int
    description: str


# ---------------------------------------------------------------------------
# Known non-ELF formats, checked in order
# ---------------------------------------------------------------------------

_SIGNATURES: list[_Signature] = [
    _Signature(ELF_MAGIC, 0, "ELF object"),
    _Signature(b"!<arch>\n", 0, "ar archive (static library)"),
    _Signature(b"!<thin>\n", 0, "thin ar archive"),
    _Signature(b"/* GNU ld script", 0, "GNU ld script"),
    _Signature(b"#!", 0, "interpreter script"),
    _Signature(b"\x1f\x8b", 0, "gzip compressed data"),
    _Signature(b"\xfd7zXZ\x00", 0, "xz compressed data"),
    _Signature(b"\x28\xb5\x2f\xfd", 0, "zstd compressed data"),
    _Signature(b"BZh", 0, "bzip2 compressed data"),
    _Signature(b"MZ", 0, "PE/MS-DOS executable"),
    _Signature(b"\xfe\xed\xfa\xce", 0, "Mach-O 32-bit"),
    _Signature(b"\xfe\xed\xfa\xcf", 0, "Mach-O 64-bit"),
    _Signature(b"\xce\xfa\xed\xfe", 0, "Mach-O 32-bit"),
    _Signature(b"\xcf\xfa\xed\xfe", 0, "Mach-O 64-bit"),
    _Signature(b"\xca\xfe\xba\xbe", 0, "Mach-O universal binary"),
]


# Linker-script commands that may open a ``lib*.so`` stand-in
_LD_SCRIPT_COMMANDS: tuple[bytes, ...] = (
    b"GROUP", b"INPUT", b"OUTPUT_FORMAT", b"OUTPUT_ARCH", b"SEARCH_DIR", b"AS_NEEDED",
)


class MagicIdentifier:
    """Name the type of a file from its leading bytes.

    Usage::

        MagicIdentifier().identify(b"#!/bin/sh\\n")
        # => "interpreter script"
    """

    def __init__(self, signatures: Optional[list[_Signature]] = None) -> None:
        self._table = list(_SIGNATURES if signatures is None else signatures)

    def identify(self, data: bytes) -> Optional[str]:
        """Describe *data*, or return ``None`` for unrecognised binary data."""
        if not data:
            return "empty file"

        match = next(
            (s.description for s in self._table
             if data[s.offset:s.offset + len(s.magic)] == s.magic),
            None,
        )
        if match is not None:
            return match
        if not self._looks_like_text(data):
            return None
        if self._looks_like_ld_script(data):
            return "GNU ld script"
        return "text file"

    @staticmethod
    def is_elf(data: bytes) -> bool:
        return data.startswith(ELF_MAGIC)

    @staticmethod
    def _looks_like_text(data: bytes) -> bool:
        """Under 5% of the bytes are neither printable ASCII nor whitespace."""
        printable = sum(1 for b in data if 0x20 <= b < 0x7F or b in b"\t\n\r")
        return (len(data) - printable) * 20 < len(data)

    @staticmethod
    def _looks_like_ld_script(data: bytes) -> bool:
        # Skip leading C comments; distributions put a banner there
        text = data.lstrip()
        while text.startswith(b"/*"):
            end = text.find(b"*/")
            if end < 0:
                return False
            text = text[end + 2:].lstrip()
        return text.startswith(_LD_SCRIPT_COMMANDS)
