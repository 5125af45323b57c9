"""JXP Python Client.

An async Python client for JXP servers.

Usage:
    from jxphelper import JxpClient

    async with JxpClient("http://localhost:4001", apikey="secret") as client:
        # List records
        users = await client.get("user", {"filter[status]": "active"})

        # Create a record
        org = await client.post("organisation", {"name": "Acme"})

        # Update it
        await client.put("organisation", org["_id"], {"status": "inactive"})

        # Delete it, and everything that depends on it
        await client.del_cascade("organisation", org["_id"])
"""

from .client import JxpClient
from .exceptions import (
    BackendError,
    ConfigurationError,
    JxpError,
    TransportError,
)
from .types import (
    BulkOperation,
    ClientConfig,
    InsertOne,
    LoginResult,
    SyncPlan,
    UpdateMany,
    UpdateOne,
    build_query_string,
)

__version__ = "0.1.0"
__all__ = [
    "JxpClient",
    "JxpError",
    "ConfigurationError",
    "TransportError",
    "BackendError",
    "ClientConfig",
    "BulkOperation",
    "InsertOne",
    "UpdateOne",
    "UpdateMany",
    "LoginResult",
    "SyncPlan",
    "build_query_string",
]
