"""
ELF Dependency Parser
======================

Manual struct-based reader for the parts of the Executable and Linkable
Format (ELF) that matter for dependency resolution:

    - ELF header (magic, class, byte order, header table locations)
    - Program headers, for the ``PT_INTERP`` loader path
    - Section headers, for the string table and the dynamic section
    - Dynamic entries ``DT_NEEDED``, ``DT_RPATH`` and ``DT_RUNPATH``

Both ELF32 and ELF64 in either byte order are supported; the layout is
chosen from the identification bytes, not from the host.  Every read goes
through :class:`~fldd.parsers.image.ImageView`, so malformed offsets
surface as :class:`~fldd.parsers.image.BoundsError`.

References:
    - TIS Committee. (1995). Tool Interface Standard (TIS) Executable and
      Linkable Format (ELF) Specification, Version 1.2.
    - System V Application Binary Interface, Edition 4.1.
    - Linux man page: elf(5).
"""

from __future__ import annotations

import struct
from typing import Optional

from fldd.core.models import DynamicInfo, ElfClass
from fldd.parsers.image import (
    ImageView,
    NoStringTableError,
    NotElfError,
    UnsupportedElfError,
)
from fldd.parsers.magic import SAMPLE_SIZE, MagicIdentifier


# ---------------------------------------------------------------------------
# ELF Constants
# ---------------------------------------------------------------------------

EI_NIDENT: int = 16

# Data encoding (endianness)
ELFDATA2LSB: int = 1  # Little-endian
ELFDATA2MSB: int = 2  # Big-endian

# Section header types
SHT_NULL: int = 0
SHT_STRTAB: int = 3
SHT_DYNAMIC: int = 6

# Program header types
PT_INTERP: int = 3

# Dynamic tags
DT_NEEDED: int = 1
DT_RPATH: int = 15
DT_RUNPATH: int = 29

# struct formats (without byte-order prefix), per ELF class
_EHDR_FMT: dict[ElfClass, str] = {
    ElfClass.ELF32: "HHIIIIIHHHHHH",
    ElfClass.ELF64: "HHIQQQIHHHHHH",
}
_PHDR_FMT: dict[ElfClass, str] = {
    ElfClass.ELF32: "IIIIIIII",
    ElfClass.ELF64: "IIQQQQQQ",
}
_SHDR_FMT: dict[ElfClass, str] = {
    ElfClass.ELF32: "IIIIIIIIII",
    ElfClass.ELF64: "IIQQQQIIQQ",
}
_DYN_FMT: dict[ElfClass, str] = {
    ElfClass.ELF32: "iI",
    ElfClass.ELF64: "qQ",
}


# ---------------------------------------------------------------------------
# Internal parsed structures
# ---------------------------------------------------------------------------

class ElfHeader:
    """Parsed ELF header fields needed to walk the header tables."""
    __slots__ = (
        "elf_class", "endian",
        "e_type", "e_machine", "e_phoff", "e_shoff",
        "e_phentsize", "e_phnum", "e_shentsize", "e_shnum",
    )

    def __init__(self, elf_class: ElfClass, endian: str) -> None:
        self.elf_class = elf_class
        self.endian = endian
        self.e_type: int = 0
        self.e_machine: int = 0
        self.e_phoff: int = 0
        self.e_shoff: int = 0
        self.e_phentsize: int = 0
        self.e_phnum: int = 0
        self.e_shentsize: int = 0
        self.e_shnum: int = 0

    @property
    def is_64bit(self) -> bool:
        return self.elf_class is ElfClass.ELF64

    def fmt(self, table: dict[ElfClass, str]) -> str:
        """Return the byte-order-qualified struct format for this class."""
        return self.endian + table[self.elf_class]


class _SectionHeader:
    """Parsed section header entry (only the fields used here)."""
    __slots__ = ("index", "sh_type", "sh_offset", "sh_size", "sh_link")

    def __init__(
        self, index: int, sh_type: int, sh_offset: int, sh_size: int, sh_link: int
    ) -> None:
        self.index = index
        self.sh_type = sh_type
        self.sh_offset = sh_offset
        self.sh_size = sh_size
        self.sh_link = sh_link


# ---------------------------------------------------------------------------
# ELF Parser
# ---------------------------------------------------------------------------

class ELFParser:
    """Bounds-checked ELF walker over a mapped image.

    Usage::

        with open_and_map(path) as image:
            parser = ELFParser(image)
            parser.parse_header()
            interp = parser.find_interp()
            info = parser.find_dynamic_info()
    """

    def __init__(self, image: ImageView) -> None:
        self._image = image
        self._header: Optional[ElfHeader] = None

    @property
    def header(self) -> ElfHeader:
        if self._header is None:
            self._header = self.parse_header()
        return self._header

    # ------------------------------------------------------------------ #
    #  ELF header
    # ------------------------------------------------------------------ #

    def parse_header(self) -> ElfHeader:
        """Verify the magic signature and read the header tables' locations.

        Raises:
            NotElfError: The image does not start with the ELF magic.
            UnsupportedElfError: Unknown class or data encoding.
            BoundsError: The header is truncated.
        """
        image = self._image
        sample = image.read(0, min(len(image), SAMPLE_SIZE), "ebuf")
        if not MagicIdentifier.is_elf(sample):
            found = MagicIdentifier().identify(sample)
            suffix = f" ({found})" if found else ""
            raise NotElfError(
                image.path,
                f"{image.path} is not an ELF executable or library{suffix}",
            )

        ident = image.read(0, EI_NIDENT, "ebuf")
        try:
            elf_class = ElfClass(ident[4])
        except ValueError:
            raise UnsupportedElfError(
                image.path, f"{image.path}: unsupported ELF class {ident[4]}"
            ) from None
        if ident[5] == ELFDATA2LSB:
            endian = "<"
        elif ident[5] == ELFDATA2MSB:
            endian = ">"
        else:
            raise UnsupportedElfError(
                image.path, f"{image.path}: unsupported ELF data encoding {ident[5]}"
            )

        h = ElfHeader(elf_class, endian)
        (
            h.e_type, h.e_machine, _version, _entry,
            h.e_phoff, h.e_shoff, _flags, _ehsize,
            h.e_phentsize, h.e_phnum, h.e_shentsize, h.e_shnum,
            _shstrndx,
        ) = image.unpack(h.fmt(_EHDR_FMT), EI_NIDENT, "ebuf")
        self._header = h
        return h

    # ------------------------------------------------------------------ #
    #  Program headers
    # ------------------------------------------------------------------ #

    def find_interp(self) -> Optional[str]:
        """Return the ``PT_INTERP`` loader path, if the image declares one.

        Stops at the first interpreter entry.  A program header outside
        the image aborts the walk with :class:`BoundsError`.
        """
        h = self.header
        fmt = h.fmt(_PHDR_FMT)
        stride = h.e_phentsize or struct.calcsize(fmt)

        for i in range(h.e_phnum):
            fields = self._image.unpack(fmt, h.e_phoff + i * stride, "pbuf")
            p_type = fields[0]
            if p_type != PT_INTERP:
                continue
            # Elf32_Phdr puts p_offset second, Elf64_Phdr puts p_flags there
            p_offset = fields[2] if h.is_64bit else fields[1]
            return self._image.cstring(p_offset, "interp")
        return None

    # ------------------------------------------------------------------ #
    #  Section headers and dynamic section
    # ------------------------------------------------------------------ #

    def find_dynamic_info(self) -> DynamicInfo:
        """Collect ``RPATH``/``RUNPATH`` directories and ``NEEDED`` names.

        Raises:
            BoundsError: The section table, string table, dynamic section
                or a referenced string lies outside the image.
            NoStringTableError: No string table section exists.
        """
        h = self.header
        image = self._image
        if h.e_shnum == 0:
            raise NoStringTableError(
                image.path, f"{image.path}: no section headers"
            )
        image.check(h.e_shoff, "sbuf")

        strtab = self._first_section(SHT_STRTAB, start=0)
        if strtab is None:
            raise NoStringTableError(
                image.path, f"{image.path}: no string table"
            )
        image.check(strtab.sh_offset, "strbase")

        # Only the first dynamic section is read; later ones are ignored
        dynamic = self._first_section(SHT_DYNAMIC, start=1, stop_at_null=True)
        info = DynamicInfo()
        if dynamic is None:
            return info

        # The dynamic section names its own string table; the first
        # string table is the fallback.
        if dynamic.sh_link and dynamic.sh_link < h.e_shnum:
            linked = self._section(dynamic.sh_link)
            if linked.sh_type == SHT_STRTAB:
                strtab = linked
        strbase = image.check(strtab.sh_offset, "strbase")

        entries = self._dynamic_entries(dynamic)
        for d_tag, d_val in entries:
            if d_tag in (DT_RPATH, DT_RUNPATH):
                value = image.cstring(strbase + d_val, "searchpath")
                # Registered last to first so the leftmost directory ranks highest
                info.search_dirs.extend(reversed([d for d in value.split(":") if d]))
        for d_tag, d_val in entries:
            if d_tag == DT_NEEDED:
                info.needed.append(image.cstring(strbase + d_val, "lib"))
        return info

    def _section(self, index: int) -> _SectionHeader:
        h = self.header
        fmt = h.fmt(_SHDR_FMT)
        stride = h.e_shentsize or struct.calcsize(fmt)
        (
            _name, sh_type, _flags, _addr, sh_offset, sh_size, sh_link,
            _info, _addralign, _entsize,
        ) = self._image.unpack(fmt, h.e_shoff + index * stride, "sbuf")
        return _SectionHeader(index, sh_type, sh_offset, sh_size, sh_link)

    def _first_section(
        self, sh_type: int, *, start: int, stop_at_null: bool = False
    ) -> Optional[_SectionHeader]:
        """Linear scan for the first section of type *sh_type*.

        With *stop_at_null*, a ``SHT_NULL`` entry ends the scan.  Some large
        binaries carry zeroed section headers past the real ones; stopping
        there is a heuristic, the per-entry bounds checks remain the actual
        guard.
        """
        for index in range(start, self.header.e_shnum):
            sh = self._section(index)
            if stop_at_null and sh.sh_type == SHT_NULL:
                return None
            if sh.sh_type == sh_type:
                return sh
        return None

    def _dynamic_entries(self, dynamic: _SectionHeader) -> list[tuple[int, int]]:
        fmt = self.header.fmt(_DYN_FMT)
        entry_size = struct.calcsize(fmt)
        offset = self._image.check(dynamic.sh_offset, "dbuf")
        return [
            self._image.unpack(fmt, offset + i * entry_size, "dbuf")
            for i in range(dynamic.sh_size // entry_size)
        ]

