"""
fldd -- Shared-Library Dependency Lister
==========================================

Computes the transitive closure of the shared libraries an ELF program
needs, by parsing the ELF structures directly (the dynamic loader is never
run).  The resulting list tells a sandbox which library files must stay
visible inside a restricted filesystem view.

Capabilities:
    - Bounds-checked parsing of ELF32/ELF64, either byte order
    - ``PT_INTERP`` loader discovery
    - ``NEEDED``/``RPATH``/``RUNPATH`` extraction with ``$ORIGIN`` expansion
    - Prioritised search through per-binary and default directories
    - Cycle-safe recursive resolution with partial results on failure

References:
    - TIS Committee. (1995). ELF Specification, Version 1.2.
    - ld.so(8), elf(5).
"""

from fldd.core.engine import DependencyResolver, ResolverState
from fldd.core.models import ResolutionResult

__version__ = "1.0.0"
__all__ = [
    "DependencyResolver",
    "ResolverState",
    "ResolutionResult",
]
