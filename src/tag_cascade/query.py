"""WIQL queries that resolve marked parents and their direct children."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from tag_cascade.http.client import ServiceError, TrackingClient
from tag_cascade.models import (
    PARENT_FIELD,
    TAGS_FIELD,
    WORK_ITEM_TYPE_FIELD,
    WorkItem,
)

BATCH_FETCH_LIMIT = 200
logger = logging.getLogger(__name__)


@dataclass(slots=True)
class QueryFault(Exception):
    """Query or batch fetch against the tracking service failed."""

    message: str
    operation: str = "query"

    def __str__(self) -> str:
        return self.message


def build_wiql(
    condition: str,
    fields: Sequence[str] = (),
    *,
    scope_to_project: bool = True,
) -> str:
    """Build a WIQL statement selecting ids (and optional fields) matching ``condition``."""

    columns = ", ".join(f"[{name}]" for name in ("System.Id", *fields))
    where = condition
    if scope_to_project:
        where = f"[System.TeamProject] = @project AND ({condition})"
    return f"SELECT {columns} FROM WorkItems WHERE {where}"


def tags_contain(tag: str) -> str:
    return f"[{TAGS_FIELD}] CONTAINS '{_escape(tag)}'"


def parent_equals(parent_id: int) -> str:
    return f"[{WORK_ITEM_TYPE_FIELD}] <> '' AND [{PARENT_FIELD}] = {int(parent_id)}"


class WorkItemQuery:
    """Run a WIQL query, then batch-fetch full field data for the matching ids."""

    def __init__(self, client: TrackingClient, *, fields: Sequence[str] = ()) -> None:
        self._client = client
        self._fields = tuple(fields)

    def query(self, condition: str) -> list[WorkItem]:
        wiql = build_wiql(condition, self._fields)
        logger.debug("Running WIQL: %s", wiql)
        try:
            payload = self._client.post("wit/wiql", {"query": wiql})
        except ServiceError as exc:
            raise QueryFault(message=f"Query failed: {exc}", operation="wiql") from exc

        ids = _extract_ids(payload)
        if not ids:
            logger.info("No work items matched: %s", condition)
            return []
        return self.fetch(ids)

    def fetch(self, ids: Sequence[int]) -> list[WorkItem]:
        """Fetch full field data for ``ids`` preserving the order the service returns."""

        items: list[WorkItem] = []
        for start in range(0, len(ids), BATCH_FETCH_LIMIT):
            chunk = ids[start : start + BATCH_FETCH_LIMIT]
            try:
                payload = self._client.get(
                    "wit/workitems",
                    params={
                        "ids": ",".join(str(item_id) for item_id in chunk),
                        "errorPolicy": "Omit",
                    },
                )
            except ServiceError as exc:
                raise QueryFault(
                    message=f"Batch fetch of {len(chunk)} work items failed: {exc}",
                    operation="batch_fetch",
                ) from exc
            items.extend(_parse_items(payload))
        return items


class ChildResolver:
    """Find work items whose parent link points at a given parent."""

    def __init__(self, query: WorkItemQuery) -> None:
        self._query = query

    def find_children(self, parent_id: int) -> list[WorkItem]:
        children = self._query.query(parent_equals(parent_id))
        if not children:
            logger.info("Work item %d has no child work items", parent_id)
        return children


def _extract_ids(payload: object) -> list[int]:
    if not isinstance(payload, dict):
        raise QueryFault(message="Query response is not a JSON object", operation="wiql")
    refs = payload.get("workItems") or []
    try:
        return [int(ref["id"]) for ref in refs]
    except (KeyError, TypeError, ValueError) as exc:
        raise QueryFault(message=f"Malformed query response: {exc}", operation="wiql") from exc


def _parse_items(payload: object) -> list[WorkItem]:
    if not isinstance(payload, dict):
        raise QueryFault(message="Batch response is not a JSON object", operation="batch_fetch")
    items: list[WorkItem] = []
    for entry in payload.get("value") or []:
        # errorPolicy=Omit returns null for items deleted since the query ran.
        if entry is None:
            continue
        if not isinstance(entry, Mapping):
            raise QueryFault(
                message=f"Malformed batch response: expected an object, got {entry!r}",
                operation="batch_fetch",
            )
        try:
            items.append(WorkItem.from_payload(entry))
        except (KeyError, TypeError, ValueError) as exc:
            raise QueryFault(
                message=f"Malformed batch response: {exc}",
                operation="batch_fetch",
            ) from exc
    return items


def _escape(value: str) -> str:
    return value.replace("'", "''")
