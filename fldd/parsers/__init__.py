"""
fldd Parsers
=============

Leaf components: the mapped image with its bounds-checked view, the ELF
walkers, and magic-number identification of non-ELF inputs.
"""

from fldd.parsers.elf_parser import ELFParser, ElfHeader
from fldd.parsers.image import (
    BoundsError,
    ImageError,
    ImageView,
    InaccessibleError,
    NoStringTableError,
    NotElfError,
    UnmappableError,
    UnsupportedElfError,
    open_and_map,
    valid,
)
from fldd.parsers.magic import MagicIdentifier

__all__ = [
    "ELFParser",
    "ElfHeader",
    "BoundsError",
    "ImageError",
    "ImageView",
    "InaccessibleError",
    "NoStringTableError",
    "NotElfError",
    "UnmappableError",
    "UnsupportedElfError",
    "open_and_map",
    "valid",
    "MagicIdentifier",
]
