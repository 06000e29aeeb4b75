"""HTTP clients: bounded async probing and the blocking client generated commands use."""

from discli.client.async_client import AsyncClient
from discli.client.sync_client import ApiResponse, SyncClient

__all__ = ["ApiResponse", "AsyncClient", "SyncClient"]
