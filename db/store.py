import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Iterable

import httpx

from config import Settings, settings
from core.errors import FetchError

log = logging.getLogger(__name__)

_NANOS = re.compile(r"(\.\d{6})\d+")


class ListingStore(ABC):
    """Query interface of the remote listing collection."""

    @abstractmethod
    async def fetch_all(self) -> list[dict[str, Any]]:
        """Return every raw listing record, newest first."""

    async def close(self) -> None:
        pass


class MemoryListingStore(ListingStore):
    def __init__(self, records: Iterable[dict[str, Any]] = ()):
        self.records = list(records)
        self.calls = 0

    async def fetch_all(self) -> list[dict[str, Any]]:
        self.calls += 1
        return [dict(record) for record in self.records]


def _parse_timestamp_value(value: str) -> datetime:
    # Firestore sends nanoseconds, datetime holds microseconds.
    return datetime.fromisoformat(_NANOS.sub(r"\1", value).replace("Z", "+00:00"))


def decode_value(value: dict[str, Any]) -> Any:
    """Decode one Firestore REST typed value into a plain Python value."""
    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "timestampValue" in value:
        return _parse_timestamp_value(value["timestampValue"])
    if "stringValue" in value:
        return value["stringValue"]
    if "bytesValue" in value:
        return value["bytesValue"]
    if "referenceValue" in value:
        return value["referenceValue"]
    if "geoPointValue" in value:
        point = value["geoPointValue"]
        return {
            "latitude": float(point.get("latitude", 0.0)),
            "longitude": float(point.get("longitude", 0.0)),
        }
    if "arrayValue" in value:
        return [decode_value(item) for item in value["arrayValue"].get("values", [])]
    if "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields", {}))
    raise ValueError(f"Unknown Firestore value type: {sorted(value)}")


def decode_fields(fields: dict[str, Any]) -> dict[str, Any]:
    return {name: decode_value(value) for name, value in fields.items()}


def decode_document(document: dict[str, Any]) -> dict[str, Any]:
    record = decode_fields(document.get("fields", {}))
    record["id"] = document["name"].rsplit("/", 1)[-1]
    return record


class FirestoreListingStore(ListingStore):
    """Reads the listings collection through the Firestore REST API."""

    def __init__(
        self,
        project_id: str,
        api_key: str | None = None,
        collection: str = "listings",
        order_field: str | None = "timestamp",
        base_url: str = "https://firestore.googleapis.com/v1",
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.project_id = project_id
        self.api_key = api_key
        self.collection = collection
        self.order_field = order_field
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    @property
    def query_url(self) -> str:
        return f"{self.base_url}/projects/{self.project_id}/databases/(default)/documents:runQuery"

    async def _get_client(self) -> httpx.AsyncClient:
        if not self._client:
            self._client = httpx.AsyncClient(
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def build_query(self) -> dict[str, Any]:
        structured: dict[str, Any] = {"from": [{"collectionId": self.collection}]}
        if self.order_field:
            structured["orderBy"] = [
                {"field": {"fieldPath": self.order_field}, "direction": "DESCENDING"}
            ]
        return {"structuredQuery": structured}

    async def fetch_all(self) -> list[dict[str, Any]]:
        client = await self._get_client()
        params = {"key": self.api_key} if self.api_key else None

        try:
            resp = await client.post(self.query_url, json=self.build_query(), params=params)
            resp.raise_for_status()
            payload = resp.json()
        except httpx.HTTPStatusError as e:
            raise FetchError(f"Firestore answered {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise FetchError(f"Firestore unreachable: {e!r}") from e
        except ValueError as e:
            raise FetchError(f"Firestore sent invalid JSON: {e}") from e

        if not isinstance(payload, list):
            raise FetchError(f"Unexpected runQuery payload: {type(payload).__name__}")

        records = []
        for entry in payload:
            if "error" in entry:
                raise FetchError(f"Firestore query error: {entry['error'].get('message', entry['error'])}")
            document = entry.get("document")
            if not document:
                continue
            try:
                records.append(decode_document(document))
            except (KeyError, ValueError) as e:
                log.warning(f"Skipping undecodable document {document.get('name', '?')}: {e}")

        log.info(f"Firestore returned {len(records)} documents from {self.collection}")
        return records


def build_store(config: Settings | None = None) -> ListingStore:
    config = config or settings
    if config.firestore_enabled:
        return FirestoreListingStore(
            project_id=config.firestore_project_id,  # type: ignore[arg-type]
            api_key=config.firestore_api_key,
            collection=config.firestore_collection,
            order_field=config.firestore_order_field,
            base_url=config.firestore_base_url,
            timeout=config.http_timeout_seconds,
        )
    log.warning("No Firestore project configured, using an empty in-memory store")
    return MemoryListingStore()
