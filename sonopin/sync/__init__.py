"""Moving pin archives between a project and a sync server."""

from .client import SyncClient
from .server import create_app
from .storage import ObjectStore

__all__ = ["SyncClient", "create_app", "ObjectStore"]
