"""Web status interface for HomeWatch."""

from .server import create_app

__all__ = ["create_app"]
