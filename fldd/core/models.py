"""
fldd Data Models
=================

Pydantic models for the results produced by the dependency resolver,
plus the enumerations shared between the parsers and the engine.
"""

from __future__ import annotations

import enum

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class ElfClass(int, enum.Enum):
    """ELF file class (``EI_CLASS``), selecting structure widths."""
    ELF32 = 1
    ELF64 = 2

    @property
    def bits(self) -> int:
        return 64 if self is ElfClass.ELF64 else 32


class DiagnosticKind(str, enum.Enum):
    """Nature of a recoverable failure."""
    INACCESSIBLE = "inaccessible"
    UNMAPPABLE = "unmappable"
    NOT_ELF = "not_elf"
    UNSUPPORTED = "unsupported"
    BAD_POINTER = "bad_pointer"
    NO_STRING_TABLE = "no_string_table"
    MALFORMED = "malformed"
    NOT_FOUND = "not_found"


# ---------------------------------------------------------------------------
# Parser output
# ---------------------------------------------------------------------------

class DynamicInfo(BaseModel):
    """Strings collected from a binary's dynamic section.

    Attributes:
        search_dirs: ``RPATH``/``RUNPATH`` directories in registration
            order.  Tags keep their declaration order; the ``:``-separated
            components of one tag are reversed, so after registration the
            first listed directory is searched first.
        needed: ``NEEDED`` library names in declaration order.
    """
    search_dirs: list[str] = Field(default_factory=list)
    needed: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Resolver output
# ---------------------------------------------------------------------------

class Diagnostic(BaseModel):
    """A recoverable failure recorded during resolution.

    Attributes:
        kind: Failure classification.
        path: Binary or library name the failure refers to.
        message: Human-readable description, as logged.
    """
    kind: DiagnosticKind
    path: str
    message: str


class ResolutionResult(BaseModel):
    """Outcome of one top-level resolution run.

    Attributes:
        target: The program the run started from.
        libraries: Resolved paths (interpreters and libraries), most
            recently resolved first.
        search_paths: Registered search directories, highest priority first.
        diagnostics: Recoverable failures in the order they occurred.
    """
    target: str
    libraries: list[str] = Field(default_factory=list)
    search_paths: list[str] = Field(default_factory=list)
    diagnostics: list[Diagnostic] = Field(default_factory=list)

    @property
    def complete(self) -> bool:
        """``True`` when no recoverable failure occurred."""
        return not self.diagnostics

    def render(self) -> str:
        """One path per line, newline-terminated."""
        return "".join(f"{lib}\n" for lib in self.libraries)
