from __future__ import annotations

from pathlib import Path
from typing import Callable, Sequence

import pytest

from shared.config import ResolverConfig
from shared.logger import FlddLogger

from fldd.core.engine import DependencyResolver, ResolverState


@pytest.fixture
def quiet_logger() -> FlddLogger:
    return FlddLogger("test", console_output=False)


@pytest.fixture
def make_resolver(
    quiet_logger: FlddLogger,
) -> Callable[[Sequence[Path]], DependencyResolver]:
    """Build a resolver over fresh state seeded with *default_dirs*."""

    def factory(default_dirs: Sequence[Path], **config: object) -> DependencyResolver:
        resolver_config = ResolverConfig(
            default_lib_paths=[str(d) for d in default_dirs], **config  # type: ignore[arg-type]
        )
        state = ResolverState.from_config(resolver_config)
        return DependencyResolver(state, config=resolver_config, logger=quiet_logger)

    return factory
