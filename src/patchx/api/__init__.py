"""HTTP API."""

from patchx.api.app import create_app

__all__ = ["create_app"]
