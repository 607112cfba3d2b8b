"""Typed façades over the backing services."""

from dockyard.clients.cache import CacheClient
from dockyard.clients.documents import DocumentClient
from dockyard.clients.relational import RelationalClient, User

__all__ = ["CacheClient", "DocumentClient", "RelationalClient", "User"]
