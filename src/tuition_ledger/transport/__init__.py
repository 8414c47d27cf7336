"""Transport to the remote ledger store."""

from .base import RemoteStoreBase
from .http_store import HttpRemoteStore, get_remote_store

__all__ = [
    "RemoteStoreBase",
    "HttpRemoteStore",
    "get_remote_store",
]
