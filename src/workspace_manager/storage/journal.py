"""Chroma-backed journal of workspace lifecycle and operation events."""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Protocol

from ..errors import JournalUnavailableError


class CollectionProtocol(Protocol):
    """Protocol for the minimal Chroma collection API used by the journal."""

    def add(
        self,
        *,
        documents: Iterable[str],
        metadatas: Iterable[dict[str, Any]],
        ids: Iterable[str],
    ) -> None:
        ...

    def get(
        self,
        *,
        ids: Iterable[str] | None = None,
        where: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> dict[str, list[Any]]:
        ...


class ClientProtocol(Protocol):
    def get_or_create_collection(self, name: str) -> CollectionProtocol:
        ...


@dataclass(slots=True)
class JournalEvent:
    """A stored workspace event."""

    id: str
    workspace: str
    event_type: str
    document: str
    metadata: dict[str, Any]
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        try:
            body: Any = json.loads(self.document)
        except json.JSONDecodeError:
            body = self.document
        return {
            "event_id": self.id,
            "workspace": self.workspace,
            "event_type": self.event_type,
            "timestamp": self.timestamp.isoformat(),
            "body": body,
        }


def _scalar_metadata(metadata: dict[str, Any]) -> dict[str, Any]:
    # Chroma metadata values must be scalars
    flattened: dict[str, Any] = {}
    for key, value in metadata.items():
        if value is None:
            continue
        if isinstance(value, (str, int, float, bool)):
            flattened[key] = value
        else:
            flattened[key] = json.dumps(value)
    return flattened


class WorkspaceJournal:
    """Persist workspace events via ChromaDB."""

    def __init__(
        self,
        path: Path,
        *,
        collection_name: str = "wsm_events",
        client_factory: Callable[[], ClientProtocol] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._path = Path(path)
        self._collection_name = collection_name
        self._client_factory = client_factory or self._default_client_factory
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._client: ClientProtocol | None = None
        self._collection: CollectionProtocol | None = None

    def _default_client_factory(self) -> ClientProtocol:
        try:
            import chromadb
        except ImportError as exc:  # pragma: no cover - depends on environment
            raise JournalUnavailableError(
                "chromadb package is not installed; install workspace-manager[journal]"
            ) from exc

        return chromadb.PersistentClient(path=str(self._path))

    def _ensure_collection(self) -> CollectionProtocol:
        if self._collection is None:
            client = self._client or self._client_factory()
            self._client = client
            self._collection = client.get_or_create_collection(self._collection_name)
        return self._collection

    def _convert_result(self, result: dict[str, list[Any]]) -> list[JournalEvent]:
        events: list[JournalEvent] = []
        ids = result.get("ids") or []
        documents = result.get("documents") or []
        metadatas = result.get("metadatas") or []
        for event_id, document, metadata in zip(ids, documents, metadatas):
            timestamp_raw = metadata.get("timestamp")
            timestamp = (
                datetime.fromisoformat(timestamp_raw)
                if isinstance(timestamp_raw, str)
                else self._clock()
            )
            events.append(
                JournalEvent(
                    id=event_id,
                    workspace=metadata.get("workspace", ""),
                    event_type=metadata.get("event_type", ""),
                    document=document,
                    metadata=metadata,
                    timestamp=timestamp,
                )
            )
        events.sort(key=lambda event: (event.timestamp, event.metadata.get("sequence", 0)))
        return events

    def ping(self) -> bool:
        """Verify that the underlying collection can be obtained."""

        self._ensure_collection()
        return True

    def record_event(
        self,
        *,
        workspace: str,
        event_type: str,
        body: Any,
        metadata: dict[str, Any] | None = None,
    ) -> JournalEvent:
        collection = self._ensure_collection()
        timestamp = self._clock()
        event_id = f"{workspace}:{uuid.uuid4().hex}"

        document = body if isinstance(body, str) else json.dumps(body, default=str)
        record_metadata = {
            "workspace": workspace,
            "event_type": event_type,
            "timestamp": timestamp.isoformat(),
            "sequence": int(timestamp.timestamp() * 1_000_000),
        }
        if metadata:
            record_metadata.update(_scalar_metadata(metadata))

        collection.add(documents=[document], metadatas=[record_metadata], ids=[event_id])

        return JournalEvent(
            id=event_id,
            workspace=workspace,
            event_type=event_type,
            document=document,
            metadata=record_metadata,
            timestamp=timestamp,
        )

    def fetch_workspace_events(self, workspace: str, *, limit: int | None = None) -> list[JournalEvent]:
        """Return the workspace's events oldest first, keeping the latest ``limit``."""

        collection = self._ensure_collection()
        events = self._convert_result(collection.get(where={"workspace": workspace}))
        if limit:
            events = events[-limit:]
        return events

    def search_events(
        self,
        query: str | None = None,
        *,
        filters: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[JournalEvent]:
        """Return events matching every metadata filter and, optionally, a text query.

        Like :meth:`fetch_workspace_events`, ``limit`` keeps the newest events.
        """

        collection = self._ensure_collection()
        where = filters or None
        if where and len(where) > 1:
            where = {"$and": [{key: value} for key, value in where.items()]}
        events = self._convert_result(collection.get(where=where))
        if query:
            needle = query.lower()
            events = [
                event
                for event in events
                if needle in event.document.lower()
                or any(needle in str(value).lower() for value in event.metadata.values())
            ]
        return events[-limit:] if limit else events


__all__ = ["JournalEvent", "JournalUnavailableError", "WorkspaceJournal"]
