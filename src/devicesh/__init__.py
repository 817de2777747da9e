"""Interactive shell for a filesystem-backed tree of configuration commands."""

from __future__ import annotations

__version__ = "0.1.0"
