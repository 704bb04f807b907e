"""Remote gateway adapters (REST and SQL)."""

from .postgrest import PostgrestGateway
from .sql import SqlRemoteGateway

__all__ = ["PostgrestGateway", "SqlRemoteGateway"]
