"""Type definitions for the JXP client."""

import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, fields, replace
from typing import Any
from urllib.parse import quote

from .exceptions import ConfigurationError

Record = dict[str, Any]


@dataclass(frozen=True)
class ClientConfig:
    """Connection settings for a JXP server."""

    server: str
    apikey: str = ""
    debug: bool = False
    hide_errors: bool = False

    def __post_init__(self) -> None:
        if not self.server:
            raise ConfigurationError("parameter server required")
        object.__setattr__(self, "server", self.server.rstrip("/"))

    @property
    def api_root(self) -> str:
        return f"{self.server}/api"

    def merge(self, **changes: Any) -> "ClientConfig":
        """Return a copy with ``changes`` applied, last write wins.

        Unknown field names and an empty ``server`` raise ConfigurationError.
        """
        known = {f.name for f in fields(self)}
        unknown = sorted(set(changes) - known)
        if unknown:
            raise ConfigurationError(f"Unknown config field(s): {', '.join(unknown)}")
        return replace(self, **changes)

    @classmethod
    def from_env(cls, prefix: str = "JXP_") -> "ClientConfig":
        """Create ClientConfig from ``{prefix}SERVER``, ``{prefix}APIKEY``, etc."""

        def flag(name: str) -> bool:
            return os.environ.get(prefix + name, "").lower() in ("1", "true", "yes", "on")

        return cls(
            server=os.environ.get(prefix + "SERVER", ""),
            apikey=os.environ.get(prefix + "APIKEY", ""),
            debug=flag("DEBUG"),
            hide_errors=flag("HIDE_ERRORS"),
        )


def _format_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return quote(str(value), safe="")


def build_query_string(opts: Mapping[str, Any] | None, apikey: str) -> str:
    """Serialize query options, injecting ``apikey``.

    Sequence values repeat their key once per element. Pairs keep the
    mapping's insertion order; ``apikey`` goes last unless the caller
    already supplied it.
    """
    params = dict(opts or {})
    params["apikey"] = apikey
    parts = []
    for key, value in params.items():
        if isinstance(value, (list, tuple)):
            parts.extend(f"{key}={_format_value(v)}" for v in value)
        else:
            parts.append(f"{key}={_format_value(value)}")
    return "&".join(parts)


def key_filter(key: str | Sequence[str], record: Mapping[str, Any]) -> dict[str, Any]:
    """Build a ``{field: value}`` filter from one or more key fields."""
    keys = [key] if isinstance(key, str) else list(key)
    return {k: record.get(k) for k in keys}


def filter_options(filter: Mapping[str, Any]) -> dict[str, Any]:  # noqa: A002
    """Turn ``{"name": "x"}`` into ``{"filter[name]": "x"}`` query options."""
    return {f"filter[{k}]": v for k, v in filter.items()}


@dataclass
class InsertOne:
    """Insert a single document."""

    document: Record

    def to_dict(self) -> dict[str, Any]:
        return {"insertOne": {"document": self.document}}


@dataclass
class UpdateOne:
    """Update the first document matching ``filter``."""

    filter: dict[str, Any]
    update: dict[str, Any]
    upsert: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "updateOne": {
                "filter": self.filter,
                "update": self.update,
                "upsert": self.upsert,
            }
        }


@dataclass
class UpdateMany:
    """Update every document matching ``filter``."""

    filter: dict[str, Any]
    update: dict[str, Any]
    upsert: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "updateMany": {
                "filter": self.filter,
                "update": self.update,
                "upsert": self.upsert,
            }
        }


BulkOperation = InsertOne | UpdateOne | UpdateMany


@dataclass
class LoginResult:
    """Result of a successful login."""

    data: dict[str, Any]
    user: dict[str, Any]


@dataclass
class SyncPlan:
    """Inserts, updates and deletes needed to make a collection match."""

    inserts: list[Record] = field(default_factory=list)
    updates: list[Record] = field(default_factory=list)
    deletes: list[Any] = field(default_factory=list)

    @classmethod
    def from_records(cls, current: Sequence[Record], desired: Sequence[Record]) -> "SyncPlan":
        """Diff the records on the server against the desired records.

        A desired record is inserted when it has no ``_id`` or its ``_id`` is
        unknown to the server, and updated when its ``_id`` is already there.
        Server records whose ``_id`` is absent from ``desired`` are deleted.
        """
        current_ids = [row.get("_id") for row in current]
        desired_ids = [row["_id"] for row in desired if row.get("_id")]

        inserts = [row for row in desired if not row.get("_id") or row["_id"] not in current_ids]
        updates = [row for row in desired if row.get("_id") and row["_id"] in current_ids]
        deletes = [_id for _id in current_ids if _id not in desired_ids]
        return cls(inserts=inserts, updates=updates, deletes=deletes)

    def __len__(self) -> int:
        return len(self.inserts) + len(self.updates) + len(self.deletes)
