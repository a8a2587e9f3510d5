"""
fldd Configuration Management
==============================

Dataclass settings loaded from a TOML file with two tables:

``[global]``
    Log verbosity and the optional log file.
``[resolver]``
    Default library directories, the quiet-mode environment variable,
    the output file mode and ``$ORIGIN`` handling.

Most distributions bake the default library directories in at build
time.  Here they are configuration, so packagers can override them
without touching code.

References:
    - TOML v1.0.0 Specification. https://toml.io/en/v1.0.0
    - ld.so(8) -- default library search order.
"""

from __future__ import annotations

import platform
import sys
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, TypeVar

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib  # type: ignore[no-redef]


# Looked up when no --config is given; its absence is not an error
_DEFAULT_CONFIG_PATH: Path = Path(__file__).resolve().parent.parent / "config.toml"

# Debian-style multiarch triplets for machines whose ``uname -m`` differs
_MULTIARCH: dict[str, str] = {
    "armv6l": "arm-linux-gnueabihf",
    "armv7l": "arm-linux-gnueabihf",
    "i386": "i386-linux-gnu",
    "i686": "i386-linux-gnu",
    "ppc64le": "powerpc64le-linux-gnu",
}

TOMLDecodeError = tomllib.TOMLDecodeError

_Section = TypeVar("_Section")


class ConfigError(ValueError):
    """A configuration value has the wrong type or cannot be expanded."""


def host_multiarch() -> str:
    """Return the multiarch triplet of the running machine."""
    machine = platform.machine() or "x86_64"
    return _MULTIARCH.get(machine, f"{machine}-linux-gnu")


# ========================== Resolver Settings ==============================


@dataclass(frozen=False, slots=True)
class ResolverConfig:
    """Configuration for the dependency resolver.

    ``default_lib_paths`` entries may reference ``{multiarch}`` and
    ``{lib_dir}``; they are expanded by :meth:`default_search_dirs`.
    The list is ordered lowest priority first, matching the order in
    which the registry receives them.
    """

    default_lib_paths: list[str] = field(
        default_factory=lambda: [
            "/lib",
            "/lib/{multiarch}",
            "/lib64",
            "/usr/lib",
            "/usr/lib/{multiarch}",
            "{lib_dir}",
            "/usr/local/lib",
        ]
    )
    lib_dir: str = "/usr/lib"
    multiarch: str = ""  # empty: derive from the host
    quiet_env_var: str = "FIREJAIL_QUIET"
    output_mode: int = 0o644
    expand_origin: bool = True

    def default_search_dirs(self) -> list[str]:
        """Expand placeholders and drop repeated directories.

        Returns:
            Directory names in registration order (first occurrence wins).

        Raises:
            ConfigError: An entry uses an unknown placeholder.
        """
        multiarch = self.multiarch or host_multiarch()
        dirs: list[str] = []
        for entry in self.default_lib_paths:
            try:
                expanded = entry.format(multiarch=multiarch, lib_dir=self.lib_dir)
            except (KeyError, IndexError, ValueError) as exc:
                raise ConfigError(
                    f"resolver.default_lib_paths: cannot expand {entry!r}"
                ) from exc
            if expanded and expanded not in dirs:
                dirs.append(expanded)
        return dirs


# =========================== Global Settings ===============================


@dataclass(frozen=False, slots=True)
class GlobalConfig:
    """Logging settings shared by every component."""

    log_level: str = "WARNING"
    log_file: str = ""  # empty: no file logging
    log_json: bool = False
    debug: bool = False


# =========================== Master Config =================================


@dataclass(frozen=False, slots=True)
class FlddConfig:
    """Both tables of the configuration file.

    Usage:
        >>> config = FlddConfig.load()                  # config.toml, if present
        >>> config = FlddConfig.load("/etc/fldd.toml")
        >>> config.resolver.quiet_env_var
        'FIREJAIL_QUIET'
    """

    global_settings: GlobalConfig = field(default_factory=GlobalConfig)
    resolver: ResolverConfig = field(default_factory=ResolverConfig)

    @classmethod
    def load(cls, path: str | Path | None = None) -> FlddConfig:
        """Read *path*, or the project's ``config.toml`` when *path* is ``None``.

        Omitted keys keep their defaults and unknown keys are ignored.
        Without an explicit *path*, a missing default file yields the
        built-in defaults.

        Raises:
            FileNotFoundError: An explicit *path* does not exist.
            TOMLDecodeError: The file is not valid TOML.
            ConfigError: A known key holds a value of the wrong type.
        """
        if path is None:
            source = _DEFAULT_CONFIG_PATH
            if not source.is_file():
                return cls()
        else:
            source = Path(path)
            if not source.is_file():
                raise FileNotFoundError(f"Configuration file not found: {source}")

        raw = tomllib.loads(source.read_text(encoding="utf-8"))
        config = cls(
            global_settings=_section(GlobalConfig, "global", raw),
            resolver=_section(ResolverConfig, "resolver", raw),
        )
        config.resolver.default_search_dirs()
        return config

    def to_dict(self) -> dict[str, Any]:
        """Plain-dict view, used for the debug dump at startup."""
        return asdict(self)


def _section(kind: type[_Section], table: str, raw: dict[str, Any]) -> _Section:
    """Build dataclass *kind* from ``raw[table]``, checking each known key."""
    data = raw.get(table, {})
    if not isinstance(data, dict):
        raise ConfigError(f"[{table}] must be a table")

    values: dict[str, Any] = {}
    for item in fields(kind):  # type: ignore[arg-type]
        if item.name not in data:
            continue
        value = data[item.name]
        expected = item.type if isinstance(item.type, str) else item.type.__name__
        if not _matches(value, expected):
            raise ConfigError(
                f"{table}.{item.name}: expected {expected}, got {type(value).__name__}"
            )
        values[item.name] = value
    return kind(**values)


def _matches(value: Any, annotation: str) -> bool:
    # bool is a subclass of int; keep them apart
    if annotation == "bool":
        return isinstance(value, bool)
    if annotation == "int":
        return isinstance(value, int) and not isinstance(value, bool)
    if annotation == "str":
        return isinstance(value, str)
    if annotation == "list[str]":
        return isinstance(value, list) and all(isinstance(v, str) for v in value)
    return True
