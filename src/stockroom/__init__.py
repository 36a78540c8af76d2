"""Stockroom inventory service."""
from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["create_app", "__version__"]


def create_app(*args, **kwargs):
    from .api import create_app as _create_app

    return _create_app(*args, **kwargs)
