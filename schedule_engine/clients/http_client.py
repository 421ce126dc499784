"""Shared HTTP session for the self-hosted embeddings server."""

from __future__ import annotations

import requests

_session: requests.Session | None = None


def get_session() -> requests.Session:
    """Return a singleton :class:`requests.Session` with JSON headers set."""
    global _session
    if _session is None:
        _session = requests.Session()
        _session.headers.update({"Content-Type": "application/json", "Accept": "application/json"})
    return _session

__all__ = ["get_session"]
