"""Memories server: authenticated, ownership-scoped journal entries over HTTP.

The FastAPI application factory lives in ``memories_server/server.py``.

Typical usage
-------------
from memories_server import create_app
app = create_app()

or, from the provided launcher:

python scripts/run_server.py --host 127.0.0.1 --port 8000
"""

from __future__ import annotations

__all__ = ["create_app", "__version__", "get_version"]

__version__ = "0.1.0"


def get_version() -> str:
    """Return the package version."""
    return __version__


def create_app(*args, **kwargs):
    """Return a configured FastAPI application.

    Forwards to :func:`memories_server.server.create_app`; imported lazily so
    ``import memories_server`` stays cheap for the models and store.
    """
    from .server import create_app as _create_app

    return _create_app(*args, **kwargs)
