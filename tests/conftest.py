"""Shared test fixtures."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field

import httpx
import pytest

from tag_cascade.config import Settings
from tag_cascade.http.client import TrackingClient

_ITEM_PATH = re.compile(r"/_apis/wit/workitems/(\d+)$")
_TAGS_CONTAINS = re.compile(r"\[System\.Tags\] CONTAINS '((?:[^']|'')*)'")
_PARENT_EQUALS = re.compile(r"\[System\.Parent\] = (\d+)")


@dataclass
class FakeTrackingService:
    """In-memory work-tracking service speaking the WIQL/work item REST shapes."""

    items: dict[int, dict[str, object]] = field(default_factory=dict)
    requests: list[httpx.Request] = field(default_factory=list)
    patches: list[tuple[int, list[dict[str, object]]]] = field(default_factory=list)
    failing_patches: set[int] = field(default_factory=set)
    failing_reads: set[int] = field(default_factory=set)
    failing_child_queries: set[int] = field(default_factory=set)
    fail_parent_query: bool = False
    batch_overrides: dict[int, object] = field(default_factory=dict)

    def add_item(
        self,
        item_id: int,
        *,
        tags: str | None = None,
        parent: int | None = None,
        work_item_type: str = "Task",
    ) -> None:
        fields: dict[str, object] = {"System.WorkItemType": work_item_type}
        if tags is not None:
            fields["System.Tags"] = tags
        if parent is not None:
            fields["System.Parent"] = parent
        self.items[item_id] = {"id": item_id, "rev": 1, "fields": fields}

    def tags_of(self, item_id: int) -> str | None:
        return self.items[item_id]["fields"].get("System.Tags")  # type: ignore[union-attr]

    def calls(self, method: str, suffix: str = "") -> list[httpx.Request]:
        return [
            request
            for request in self.requests
            if request.method == method and request.url.path.endswith(suffix)
        ]

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if request.method == "POST" and path.endswith("/_apis/wit/wiql"):
            return self._wiql(json.loads(request.content)["query"])
        if request.method == "GET" and path.endswith("/_apis/wit/workitems"):
            return self._batch(request)
        match = _ITEM_PATH.search(path)
        if match is None:
            return httpx.Response(404, json={"message": f"Unknown route {path}"})
        item_id = int(match.group(1))
        if item_id not in self.items:
            return httpx.Response(404, json={"message": f"Work item {item_id} does not exist"})
        if request.method == "GET":
            if item_id in self.failing_reads:
                return httpx.Response(403, json={"message": "Access denied"})
            return httpx.Response(200, json=self.items[item_id])
        if request.method == "PATCH":
            if item_id in self.failing_patches:
                return httpx.Response(400, json={"message": "Rule violation"})
            operations = json.loads(request.content)
            self.patches.append((item_id, operations))
            item = self.items[item_id]
            for operation in operations:
                name = operation["path"].removeprefix("/fields/")
                item["fields"][name] = operation["value"]  # type: ignore[index]
            item["rev"] = int(item["rev"]) + 1  # type: ignore[call-overload]
            return httpx.Response(200, json=item)
        return httpx.Response(405, json={"message": "Method not allowed"})

    def _batch(self, request: httpx.Request) -> httpx.Response:
        ids = [int(value) for value in request.url.params["ids"].split(",")]
        missing = [item_id for item_id in ids if item_id not in self.items]
        omit_errors = request.url.params.get("errorPolicy") == "Omit"
        if missing and not omit_errors:
            return httpx.Response(
                404,
                json={"message": f"TF401232: Work item {missing[0]} does not exist"},
            )
        values = [
            self.batch_overrides.get(item_id, self.items.get(item_id)) for item_id in ids
        ]
        return httpx.Response(200, json={"count": len(values), "value": values})

    def _wiql(self, query: str) -> httpx.Response:
        parent_match = _PARENT_EQUALS.search(query)
        if parent_match is not None:
            parent_id = int(parent_match.group(1))
            if parent_id in self.failing_child_queries:
                return httpx.Response(400, json={"message": "TF51005: invalid query"})
            ids = [
                item_id
                for item_id, item in self.items.items()
                if item["fields"].get("System.Parent") == parent_id  # type: ignore[union-attr]
                and item["fields"].get("System.WorkItemType")  # type: ignore[union-attr]
            ]
            return _wiql_response(ids)
        tag_match = _TAGS_CONTAINS.search(query)
        if tag_match is not None:
            if self.fail_parent_query:
                return httpx.Response(401, json={"message": "Unauthorized"})
            needle = tag_match.group(1).replace("''", "'")
            ids = [
                item_id
                for item_id, item in self.items.items()
                if needle in str(item["fields"].get("System.Tags") or "")  # type: ignore[union-attr]
            ]
            return _wiql_response(ids)
        return httpx.Response(400, json={"message": f"Unsupported query {query}"})


def _wiql_response(ids: list[int]) -> httpx.Response:
    return httpx.Response(
        200,
        json={
            "queryType": "flat",
            "workItems": [{"id": item_id, "url": f"https://example/{item_id}"} for item_id in ids],
        },
    )


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        organization="contoso",
        project="Ops",
        token="secret-pat",
        retry_backoff_seconds=0.0,
    )


@pytest.fixture()
def service() -> FakeTrackingService:
    return FakeTrackingService()


@pytest.fixture()
def sleeps() -> list[float]:
    return []


@pytest.fixture()
def client(settings: Settings, service: FakeTrackingService, sleeps: list[float]):
    with TrackingClient(
        settings,
        transport=httpx.MockTransport(service.handle),
        sleep=sleeps.append,
    ) as tracking_client:
        yield tracking_client
