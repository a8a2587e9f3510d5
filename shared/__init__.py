"""
fldd Shared Module
==================

Configuration and structured logging used by the fldd resolver and its
command-line interface.
"""

from shared.config import ConfigError, FlddConfig, GlobalConfig, ResolverConfig
from shared.logger import FlddLogger

__all__ = ["ConfigError", "FlddConfig", "GlobalConfig", "ResolverConfig", "FlddLogger"]
