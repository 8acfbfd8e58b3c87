"""
CouchDB store client over HTTP.

Implements StoreClient against the CouchDB HTTP API using a pooled
httpx.Client. The client is owned by the caller: create one per
application, pass it to the Repository, close it on shutdown.

Error mapping:
    409            -> StoreConflictError
    404            -> StoreNotFoundError
    other >= 400   -> StoreError (status, CouchDB error and reason)
    network errors -> StoreConnectionError

Example:
    >>> with CouchStoreClient(StoreSettings(url="http://localhost:5984")) as store:
    ...     db = store.open("posts")
    ...     store.save(db, {"_id": "FOO", "title": "hello"})
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any
from urllib.parse import quote

import httpx

from ..config import StoreSettings
from ..errors import StoreConflictError, StoreConnectionError, StoreError, StoreNotFoundError
from .base import BatchItem, DatabaseHandle

logger = logging.getLogger(__name__)

DESIGN_PREFIX = "_design/"

# View options CouchDB expects JSON-encoded in the query string
_JSON_OPTIONS = ("key", "startkey", "endkey")


class CouchStoreClient:
    """StoreClient for CouchDB.

    Attributes:
        settings: Connection settings
    """

    def __init__(
        self,
        settings: StoreSettings | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            settings: Connection settings (loaded from env if not provided)
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.settings = settings or StoreSettings()
        self._client = httpx.Client(
            base_url=self.settings.url.rstrip("/"),
            auth=self.settings.auth,
            timeout=httpx.Timeout(self.settings.timeout, pool=self.settings.pool_timeout),
            limits=httpx.Limits(max_connections=self.settings.max_connections),
            transport=transport,
            headers={"Accept": "application/json"},
        )
        logger.info(
            "CouchDB client created",
            extra={"store_url": self.settings.url, "max_connections": self.settings.max_connections},
        )

    def close(self) -> None:
        """Close the underlying connection pool."""
        self._client.close()
        logger.info("CouchDB client closed", extra={"store_url": self.settings.url})

    def __enter__(self) -> CouchStoreClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # Databases

    def open(self, database: str) -> DatabaseHandle:
        response = self._request("HEAD", f"/{quote(database, safe='')}")
        self._raise_for_status(response, f"database '{database}'")
        return DatabaseHandle(database)

    def create_database(self, database: str) -> DatabaseHandle:
        """Create a database; an existing one is reused."""
        response = self._request("PUT", f"/{quote(database, safe='')}")
        if response.status_code != 412:
            self._raise_for_status(response, f"database '{database}'")
        return DatabaseHandle(database)

    def delete_database(self, database: str) -> None:
        """Delete a database; a missing one is ignored."""
        response = self._request("DELETE", f"/{quote(database, safe='')}")
        if response.status_code != 404:
            self._raise_for_status(response, f"database '{database}'")

    # Documents

    def save(self, db: DatabaseHandle, document: dict[str, Any]) -> dict[str, Any]:
        doc_id = document.get("_id")
        if doc_id is None:
            response = self._request("POST", f"/{quote(db.name, safe='')}", json=document)
        else:
            response = self._request("PUT", self._doc_path(db, doc_id), json=document)
        self._raise_for_status(response, f"document '{doc_id}'")

        body = response.json()
        saved = dict(document)
        saved["_id"] = body["id"]
        saved["_rev"] = body["rev"]
        logger.debug("Document saved", extra={"db": db.name, "doc_id": body["id"], "rev": body["rev"]})
        return saved

    def save_batch(self, db: DatabaseHandle, documents: list[dict[str, Any]]) -> list[BatchItem]:
        response = self._request(
            "POST", f"/{quote(db.name, safe='')}/_bulk_docs", json={"docs": documents}
        )
        self._raise_for_status(response, f"bulk save to '{db.name}'")
        items = [BatchItem.from_dict(entry) for entry in response.json()]
        logger.debug("Batch saved", extra={"db": db.name, "count": len(items)})
        return items

    def delete(self, db: DatabaseHandle, doc_id: str, rev: str) -> str:
        response = self._request("DELETE", self._doc_path(db, doc_id), params={"rev": rev})
        self._raise_for_status(response, f"document '{doc_id}'")
        return response.json()["rev"]

    def fetch(self, db: DatabaseHandle, doc_id: str) -> dict[str, Any]:
        response = self._request("GET", self._doc_path(db, doc_id))
        self._raise_for_status(response, f"document '{doc_id}'")
        return response.json()

    # Views

    def fetch_view(
        self,
        db: DatabaseHandle,
        design: str,
        view: str,
        options: Mapping[str, Any],
    ) -> list[dict[str, Any]]:
        path = f"/{quote(db.name, safe='')}/_design/{quote(design, safe='')}/_view/{quote(view, safe='')}"
        params = encode_view_params(options)

        if "keys" in options:
            response = self._request("POST", path, params=params, json={"keys": list(options["keys"])})
        else:
            response = self._request("GET", path, params=params)
        self._raise_for_status(response, f"view '{design}/{view}'")

        rows = response.json().get("rows", [])
        logger.debug(
            "View fetched",
            extra={"db": db.name, "design": design, "view": view, "rows": len(rows)},
        )
        return rows

    # Internals

    def _doc_path(self, db: DatabaseHandle, doc_id: str) -> str:
        if doc_id.startswith(DESIGN_PREFIX):
            encoded = DESIGN_PREFIX + quote(doc_id[len(DESIGN_PREFIX):], safe="")
        else:
            encoded = quote(doc_id, safe="")
        return f"/{quote(db.name, safe='')}/{encoded}"

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return self._client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            raise StoreConnectionError(
                f"Failed to reach CouchDB: {e}", address=self.settings.url
            ) from e

    @staticmethod
    def _raise_for_status(response: httpx.Response, subject: str) -> None:
        if response.status_code < 400:
            return

        error = reason = None
        if response.content:
            try:
                body = response.json()
                error, reason = body.get("error"), body.get("reason")
            except (ValueError, AttributeError):
                reason = response.text

        if response.status_code == 409:
            raise StoreConflictError(f"Conflict on {subject}", reason=reason)
        if response.status_code == 404:
            raise StoreNotFoundError(f"Not found: {subject}", reason=reason)
        raise StoreError(
            f"CouchDB returned {response.status_code} for {subject}: {error or ''} {reason or ''}".strip(),
            status_code=response.status_code,
            error=error,
            reason=reason,
        )


def encode_view_params(options: Mapping[str, Any]) -> dict[str, str]:
    """Encode view options as CouchDB query parameters.

    key/startkey/endkey are JSON values; keys travel in the request body.
    """
    params: dict[str, str] = {}
    for name, value in options.items():
        if name == "keys":
            continue
        if name in _JSON_OPTIONS:
            params[name] = json.dumps(value)
        elif isinstance(value, bool):
            params[name] = "true" if value else "false"
        else:
            params[name] = str(value)
    return params
