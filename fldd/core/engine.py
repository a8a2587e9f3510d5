"""
fldd Resolution Engine
=======================

Computes the transitive closure of shared-library dependencies of a
program by reading its ELF structures directly; the dynamic loader is
never invoked.

Resolution Pipeline (per binary):
    1. Map the file read-only
    2. Verify the ELF header
    3. Record the ``PT_INTERP`` loader path as a dependency
    4. Collect ``RPATH``/``RUNPATH`` directories and ``NEEDED`` names
    5. Release the mapping
    6. Register the directories, highest priority
    7. Resolve each name through the registry and recurse into hits

All state that outlives one binary (registry, dependency set,
diagnostics) lives in a :class:`ResolverState` the caller owns.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from typing import Optional

from shared.config import ResolverConfig
from shared.logger import FlddLogger

from fldd.core.models import (
    Diagnostic,
    DiagnosticKind,
    DynamicInfo,
    ResolutionResult,
)
from fldd.core.registry import DependencySet, SearchPathRegistry
from fldd.parsers.elf_parser import ELFParser
from fldd.parsers.image import ImageError, open_and_map

# $ORIGIN only as a whole path component; ${ORIGIN} is self-delimiting
_ORIGIN_TOKEN = re.compile(r"\$(?:\{ORIGIN\}|ORIGIN(?=/|$))")


@dataclass(slots=True)
class ResolverState:
    """Mutable state of one top-level resolution run.

    Attributes:
        search_paths: Prioritised search directories.
        dependencies: Resolved paths accumulated so far.
        diagnostics: Recoverable failures in order of occurrence.
    """

    search_paths: SearchPathRegistry = field(default_factory=SearchPathRegistry)
    dependencies: DependencySet = field(default_factory=DependencySet)
    diagnostics: list[Diagnostic] = field(default_factory=list)

    @classmethod
    def from_config(cls, config: ResolverConfig) -> ResolverState:
        """Create a fresh state seeded with the configured default directories."""
        state = cls()
        state.search_paths.register_defaults(config.default_search_dirs())
        return state


def expand_origin(directory: str, binary: str) -> str:
    """Substitute ``$ORIGIN`` with the directory containing *binary*."""
    if "$" not in directory:
        return directory
    origin = os.path.dirname(os.path.abspath(binary))
    return _ORIGIN_TOKEN.sub(lambda _match: origin, directory)


class DependencyResolver:
    """Drives the recursive dependency closure over a :class:`ResolverState`.

    Usage::

        state = ResolverState.from_config(config.resolver)
        resolver = DependencyResolver(state, logger=logger)
        result = resolver.resolve("/usr/bin/ls")
        print(result.render(), end="")

    Args:
        state: Registry, dependency set and diagnostics to work on.
        config: Resolver settings.  Defaults are used if not provided.
        logger: Logger instance.  A new one is created if not provided.
    """

    def __init__(
        self,
        state: ResolverState,
        config: ResolverConfig | None = None,
        logger: FlddLogger | None = None,
    ) -> None:
        self._state = state
        self._config: ResolverConfig = config or ResolverConfig()
        self._logger: FlddLogger = logger or FlddLogger("resolver")

    @property
    def state(self) -> ResolverState:
        return self._state

    # ------------------------------------------------------------------ #
    #  Entry point
    # ------------------------------------------------------------------ #

    def resolve(self, path: str) -> ResolutionResult:
        """Resolve *path* and everything it transitively depends on.

        Failures below the top level never raise; they are recorded as
        diagnostics and the partial result is returned.
        """
        with self._logger.timed(f"resolution of {path}"):
            self.resolve_exe(path)

        return ResolutionResult(
            target=path,
            libraries=list(self._state.dependencies),
            search_paths=list(self._state.search_paths),
            diagnostics=list(self._state.diagnostics),
        )

    # ------------------------------------------------------------------ #
    #  Recursive steps
    # ------------------------------------------------------------------ #

    def resolve_exe(self, path: str) -> None:
        """Scan one binary and resolve the libraries it names."""
        with self._logger.binary(path):
            info = self._scan(path)
            if info is None:
                return

            for directory in info.search_dirs:
                if self._config.expand_origin:
                    directory = expand_origin(directory, path)
                if self._state.search_paths.add(directory):
                    self._logger.debug("search directory %s", directory)

            for name in info.needed:
                self.resolve_lib(name)

    def resolve_lib(self, name: str) -> None:
        """Locate *name* in the registry, record it and scan it."""
        dependencies = self._state.dependencies
        if name in dependencies:
            return

        found = self._state.search_paths.search(name)
        if found is None:
            self._report(
                DiagnosticKind.NOT_FOUND, name, f"cannot find {name}, skipping..."
            )
            return
        if found in dependencies:
            return

        self._logger.debug("%s => %s", name, found)
        dependencies.add(found)
        self.resolve_exe(found)

    def _scan(self, path: str) -> Optional[DynamicInfo]:
        """Read the loader path and dynamic strings of *path*.

        The mapping is released before this returns, so recursion never
        holds more than one image.
        """
        try:
            with open_and_map(path) as image:
                parser = ELFParser(image)
                header = parser.parse_header()
                self._logger.debug(
                    "ELF%d type %d machine %d, %d program headers, %d section headers",
                    header.elf_class.bits,
                    header.e_type,
                    header.e_machine,
                    header.e_phnum,
                    header.e_shnum,
                )
                interp = parser.find_interp()
                if interp:
                    self._state.dependencies.add(interp)
                return parser.find_dynamic_info()
        except ImageError as exc:
            self._report(exc.kind, exc.path, str(exc))
            return None

    def _report(self, kind: DiagnosticKind, path: str, message: str) -> None:
        self._state.diagnostics.append(
            Diagnostic(kind=kind, path=path, message=message)
        )
        self._logger.warning(message)
