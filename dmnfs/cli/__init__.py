"""CLI package exports for top-level command entry points."""

from __future__ import annotations

from .main import NFSCLI, main

__all__ = ['NFSCLI', 'main']
