"""
fldd Core Module
=================

Data models and the ordered collections shared by the resolver.  The
engine itself lives in :mod:`fldd.core.engine`.
"""

from fldd.core.models import (
    Diagnostic,
    DiagnosticKind,
    DynamicInfo,
    ElfClass,
    ResolutionResult,
)
from fldd.core.registry import DependencySet, SearchPathRegistry

__all__ = [
    "Diagnostic",
    "DiagnosticKind",
    "DynamicInfo",
    "ElfClass",
    "ResolutionResult",
    "DependencySet",
    "SearchPathRegistry",
]
