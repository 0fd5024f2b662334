# areareg/core/__init__.py
"""Core computational modules for areareg."""
from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = ["bootstrap", "inference", "linalg"]


def __getattr__(name: str) -> Any:
    """Load core submodules on first access (bootstrap depends on estimators)."""
    if name in __all__:
        module = import_module(f"{__name__}.{name}")
        globals()[name] = module
        return module
    raise AttributeError(f"module 'areareg.core' has no attribute '{name}'")
