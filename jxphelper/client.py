"""JXP HTTP client."""

from collections.abc import Mapping, Sequence
from typing import Any

import httpx
from loguru import logger

from .diagnostics import describe, display_error, timed
from .exceptions import BackendError, TransportError, decode_body
from .types import (
    BulkOperation,
    ClientConfig,
    InsertOne,
    LoginResult,
    Record,
    SyncPlan,
    UpdateMany,
    UpdateOne,
    build_query_string,
    filter_options,
    key_filter,
)

Key = str | Sequence[str]


class JxpClient:
    """Async HTTP client for a JXP server.

    Args:
        server: Base URL of the server (e.g., "http://localhost:4001").
        apikey: API key sent with every request.
        debug: Log timing markers and outgoing writes.
        hide_errors: Don't log a line when a request fails.
        timeout: Request timeout in seconds. Ignored when ``http_client`` is
            given; that client keeps its own timeout.
        http_client: Preconfigured ``httpx.AsyncClient`` to send requests with.
            The caller stays responsible for closing it.

    Raises:
        ConfigurationError: If ``server`` is missing or empty.

    Example:
        >>> async with JxpClient("http://localhost:4001", apikey="secret") as client:
        ...     result = await client.get("user", {"filter[status]": "active"})
        ...     print(f"Found {result['count']} users")
    """

    def __init__(
        self,
        server: str | None = None,
        apikey: str = "",
        *,
        debug: bool = False,
        hide_errors: bool = False,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.config = ClientConfig(
            server=server or "",
            apikey=apikey,
            debug=debug,
            hide_errors=hide_errors,
        )
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_config(cls, config: ClientConfig, **kwargs: Any) -> "JxpClient":
        """Create a client from an existing ClientConfig."""
        return cls(
            config.server,
            config.apikey,
            debug=config.debug,
            hide_errors=config.hide_errors,
            **kwargs,
        )

    def configure(self, **changes: Any) -> None:
        """Merge ``changes`` into the configuration used by the next call.

        Raises:
            ConfigurationError: If a field name is not a ClientConfig field,
                or ``server`` would become empty. The current configuration
                is left untouched.
        """
        self.config = self.config.merge(**changes)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "JxpClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    # URLs

    def _endpoint(self, segment: str, *path: Any, opts: Mapping[str, Any] | None = None) -> str:
        parts = [self.config.server, segment, *(str(p) for p in path)]
        return "/".join(parts) + "?" + build_query_string(opts, self.config.apikey)

    def url(self, resource: str, opts: Mapping[str, Any] | None = None) -> str:
        """URL listing ``resource`` with the given query options."""
        return self._endpoint("api", resource, opts=opts)

    # Transport

    async def _request(
        self,
        method: str,
        url: str,
        *,
        operation: str,
        resource: str,
        json: Any = None,
        strict: bool = False,
        display: bool = True,
    ) -> httpx.Response:
        """Send one request, normalizing every failure.

        ``strict`` additionally rejects 2xx answers other than 200, which
        read operations treat as failures.
        """
        config = self.config
        show = display and not config.hide_errors
        with timed(operation, resource, config.debug):
            try:
                response = await self._client.request(method, url, json=json)
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                if show:
                    display_error(e)
                raise BackendError.from_response(e.response) from e
            except httpx.HTTPError as e:
                if show:
                    display_error(e)
                raise TransportError(f"Request failed: {describe(e)}", e) from e

        if strict and response.status_code != 200:
            error = BackendError.from_response(response)
            if show:
                display_error(error, response)
            raise error
        return response

    async def _json(self, method: str, url: str, **kwargs: Any) -> Any:
        response = await self._request(method, url, **kwargs)
        return decode_body(response)

    # Authentication

    async def login(self, email: str, password: str) -> Any:
        """Log in and fetch the logged-in user.

        Unlike every other method, a rejected login does not raise: the
        server's error body is returned instead. A login reply without a
        ``user_id`` is returned as is, in the same way. Transport failures
        still raise TransportError.

        Returns:
            LoginResult with the login response and the user record, or the
            body sent by the server.
        """
        try:
            data = await self._json(
                "POST",
                f"{self.config.server}/login",
                json={"email": email, "password": password},
                operation="login",
                resource="user",
                display=False,
            )
            if not isinstance(data, dict) or not data.get("user_id"):
                return data
            user = await self._json(
                "GET",
                self._endpoint("api", "user", data["user_id"]),
                operation="login",
                resource="user",
                display=False,
            )
        except BackendError as e:
            return e.body
        return LoginResult(data=data, user=user)

    async def getjwt(self, email: str) -> Any:
        """Fetch a signed token for ``email``."""
        return await self._json(
            "POST",
            self._endpoint("login", "getjwt"),
            json={"email": email},
            operation="getjwt",
            resource="login",
            display=False,
        )

    # Reads

    async def get_one(
        self,
        resource: str,
        id: str,  # noqa: A002
        opts: Mapping[str, Any] | None = None,
    ) -> Record:
        """Fetch a single record.

        Args:
            resource: Resource type, e.g. "user".
            id: Record ``_id``.
            opts: Extra query options (``fields``, ``populate``...).

        Returns:
            The record.
        """
        return await self._json(
            "GET",
            self._endpoint("api", resource, id, opts=opts),
            operation="get_one",
            resource=resource,
            strict=True,
        )

    async def get(self, resource: str, opts: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """List records.

        Args:
            resource: Resource type.
            opts: Query options, e.g. ``{"filter[status]": "active", "limit": 10}``.
                List values are sent as repeated parameters.

        Returns:
            The server's envelope, with the records under ``data`` and the
            total under ``count``.
        """
        return await self._json(
            "GET",
            self.url(resource, opts),
            operation="get",
            resource=resource,
            strict=True,
        )

    async def csv(self, resource: str, opts: Mapping[str, Any] | None = None) -> str:
        """Export records as CSV text."""
        response = await self._request(
            "GET",
            self._endpoint("csv", resource, opts=opts),
            operation="csv",
            resource=resource,
            strict=True,
        )
        return response.text

    async def query(
        self,
        resource: str,
        query: Mapping[str, Any],
        opts: Mapping[str, Any] | None = None,
    ) -> Any:
        """Run a structured query against ``resource``."""
        return await self._json(
            "POST",
            self._endpoint("query", resource, opts=opts),
            json={"query": query},
            operation="query",
            resource=resource,
            strict=True,
        )

    async def aggregate(
        self,
        resource: str,
        query: Sequence[Mapping[str, Any]] | Mapping[str, Any],
        opts: Mapping[str, Any] | None = None,
    ) -> Any:
        """Run an aggregation pipeline against ``resource``."""
        return await self._json(
            "POST",
            self._endpoint("aggregate", resource, opts=opts),
            json={"query": query},
            operation="aggregate",
            resource=resource,
            strict=True,
        )

    async def count(self, resource: str, opts: Mapping[str, Any] | None = None) -> int:
        """Count records matching ``opts``. ``limit`` is always sent as 1."""
        params = dict(opts or {})
        params["limit"] = 1
        data = await self._json(
            "GET",
            self._endpoint("count", resource, opts=params),
            operation="count",
            resource=resource,
            strict=True,
        )
        return data["count"]

    # Writes

    async def post(self, resource: str, data: Record) -> Record:
        """Create a record."""
        url = self._endpoint("api", resource)
        if self.config.debug:
            logger.debug(f"POSTing to {url}")
        return await self._json("POST", url, json=data, operation="post", resource=resource)

    async def put(self, resource: str, id: str, data: Record) -> Record:  # noqa: A002
        """Update a record."""
        url = self._endpoint("api", resource, id)
        if self.config.debug:
            logger.debug(f"PUTting to {url}")
        return await self._json("PUT", url, json=data, operation="put", resource=resource)

    async def postput(self, resource: str, key: Key, data: Record) -> Record:
        """Update the record matching ``data`` on ``key``, or create it.

        Args:
            resource: Resource type.
            key: Field name, or list of field names, identifying the record.
            data: Record to write; must carry the key field(s).

        Returns:
            The updated or created record.

        Note:
            When several records match, the first one listed is updated.
        """
        result = await self.get(resource, filter_options(key_filter(key, data)))
        if result.get("count"):
            return await self.put(resource, result["data"][0]["_id"], data)
        return await self.post(resource, data)

    # Bulk writes

    async def bulk(
        self,
        resource: str,
        operations: Sequence[BulkOperation | Mapping[str, Any]],
    ) -> Any:
        """Send bulk operations as given, in order."""
        payload = [
            op.to_dict() if isinstance(op, BulkOperation) else op for op in operations
        ]
        return await self._json(
            "POST",
            self._endpoint("bulkwrite", resource),
            json=payload,
            operation="bulk",
            resource=resource,
        )

    async def bulk_postput(
        self,
        resource: str,
        key: Key,
        data: Record | Sequence[Record],
    ) -> Any:
        """Upsert records matched on ``key`` in one bulk request.

        A single record is handed to :meth:`postput` instead.
        """
        if isinstance(data, Mapping):
            return await self.postput(resource, key, data)
        operations = [
            UpdateOne(filter=key_filter(key, row), update={"$set": row}, upsert=True)
            for row in data
        ]
        return await self.bulk(resource, operations)

    async def bulk_put(self, resource: str, key: Key, data: Sequence[Record]) -> Any:
        """Update existing records matched on ``key``; unmatched rows are skipped."""
        operations = [
            UpdateOne(filter=key_filter(key, row), update={"$set": row}, upsert=False)
            for row in data
        ]
        return await self.bulk(resource, operations)

    async def bulk_post(self, resource: str, data: Sequence[Record]) -> Any:
        """Insert records in one bulk request."""
        return await self.bulk(resource, [InsertOne(document=row) for row in data])

    async def put_all(self, resource: str, data: Record) -> Any:
        """Apply ``data`` to every record of ``resource``."""
        return await self.bulk(resource, [UpdateMany(filter={}, update={"$set": data})])

    # Deletes

    async def _delete(
        self,
        resource: str,
        id: str,  # noqa: A002
        opts: Mapping[str, Any] | None,
        operation: str,
    ) -> Any:
        return await self._json(
            "DELETE",
            self._endpoint("api", resource, id, opts=opts),
            operation=operation,
            resource=resource,
        )

    async def delete(self, resource: str, id: str) -> Any:  # noqa: A002
        """Delete a record (soft delete, unless the server says otherwise)."""
        return await self._delete(resource, id, None, "delete")

    async def del_perm(self, resource: str, id: str) -> Any:  # noqa: A002
        """Delete a record permanently."""
        return await self._delete(resource, id, {"_permaDelete": 1}, "del_perm")

    async def del_cascade(self, resource: str, id: str) -> Any:  # noqa: A002
        """Delete a record and the records depending on it."""
        return await self._delete(resource, id, {"_cascade": 1}, "del_cascade")

    async def del_perm_cascade(self, resource: str, id: str) -> Any:  # noqa: A002
        return await self._delete(
            resource, id, {"_permaDelete": 1, "_cascade": 1}, "del_perm_cascade"
        )

    async def del_all(self, resource: str, key: str, id: Any) -> list[Any]:  # noqa: A002
        """Delete every record whose ``key`` equals ``id``.

        Deletes run one after another in listing order. The first failure
        stops the loop and propagates; earlier deletions are not undone.

        Returns:
            One result per deleted record.
        """
        result = await self.get(resource, filter_options({key: id}))
        results = []
        for row in result.get("data") or []:
            if self.config.debug:
                logger.debug(f"Deleting {resource} {row['_id']}")
            results.append(await self.delete(resource, row["_id"]))
        return results

    async def sync(
        self,
        resource: str,
        key: str,
        id: Any,  # noqa: A002
        data: Sequence[Record],
    ) -> list[Any]:
        """Make the records whose ``key`` equals ``id`` match ``data``.

        The difference is computed once (see :class:`SyncPlan`), then all
        inserts, all updates and all deletes are sent one at a time, in that
        order. The first failure stops the run.

        Returns:
            One result per request sent.
        """
        result = await self.get(resource, filter_options({key: id}))
        plan = SyncPlan.from_records(result.get("data") or [], data)
        results = []
        for row in plan.inserts:
            if self.config.debug:
                logger.debug(f"Inserting {resource} {row}")
            results.append(await self.post(resource, row))
        for row in plan.updates:
            if self.config.debug:
                logger.debug(f"Updating {resource} {row['_id']}")
            results.append(await self.put(resource, row["_id"], row))
        for _id in plan.deletes:
            if self.config.debug:
                logger.debug(f"Deleting {resource} {_id}")
            results.append(await self.delete(resource, _id))
        return results

    # Server-side calls, groups and models

    async def call(self, resource: str, cmd: str, data: Any = None) -> Any:
        """Invoke the server-side procedure ``cmd`` on ``resource``."""
        url = self._endpoint("call", resource, cmd)
        if self.config.debug:
            logger.debug(f"CALLing {url}")
        return await self._json(
            "POST", url, json=data, operation="call", resource=resource, display=False
        )

    async def groups_put(self, user_id: str, groups: str | Sequence[str]) -> Any:
        """Replace the groups of ``user_id``."""
        return await self._json(
            "PUT",
            self._endpoint("groups", user_id),
            json={"group": groups},
            operation="groups_put",
            resource="groups",
            display=False,
        )

    async def groups_post(self, user_id: str, groups: str | Sequence[str]) -> Any:
        """Add ``user_id`` to one or more groups."""
        url = self._endpoint("groups", user_id)
        if self.config.debug:
            logger.debug(f"GROUP POSTing to {url}")
        return await self._json(
            "POST",
            url,
            json={"group": groups},
            operation="groups_post",
            resource="groups",
        )

    async def groups_del(self, user_id: str, group: str) -> Any:
        """Remove ``user_id`` from ``group``."""
        return await self._json(
            "DELETE",
            self._endpoint("groups", user_id, opts={"group": group}),
            operation="groups_del",
            resource="groups",
        )

    async def model(self, modelname: str) -> dict[str, Any]:
        """Fetch the schema of one model."""
        return await self._json(
            "GET",
            self._endpoint("model", modelname),
            operation="model",
            resource=modelname,
            display=False,
        )

    async def models(self) -> Any:
        """Fetch every model schema."""
        return await self._json(
            "GET", self._endpoint("model"), operation="models", resource="model", display=False
        )
