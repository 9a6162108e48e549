"""Push the current branch to every mirror of an aggregate git remote."""

from __future__ import annotations

__version__ = "1.0.0"

__all__ = ["__version__"]
