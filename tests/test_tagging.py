from __future__ import annotations

import json
from typing import TYPE_CHECKING

import allure
import pytest

from tag_cascade.http.client import TrackingClient
from tag_cascade.models import MergeStatus, TagSet
from tag_cascade.tagging import TagMerger

if TYPE_CHECKING:
    from conftest import FakeTrackingService

pytestmark = [
    allure.epic("Tag Cascade"),
    allure.feature("Tag Merge"),
]


def test_merge_appends_new_tags_with_single_add_operation(
    client: TrackingClient,
    service: FakeTrackingService,
) -> None:
    service.add_item(200, tags="Research; Blocked", parent=100)

    outcome = TagMerger(client).merge_tags(200, ["Incident Response"])

    assert outcome.status is MergeStatus.UPDATED
    assert outcome.added == TagSet(["Incident Response"])
    assert service.tags_of(200) == "Research; Blocked; Incident Response"
    patch = service.calls("PATCH")[0]
    assert json.loads(patch.content) == [
        {
            "op": "add",
            "path": "/fields/System.Tags",
            "value": "Research; Blocked; Incident Response",
        },
    ]


def test_merge_onto_untagged_item(client: TrackingClient, service: FakeTrackingService) -> None:
    service.add_item(201, parent=100)

    outcome = TagMerger(client).merge_tags(201, ["A", "B"])

    assert outcome.success
    assert service.tags_of(201) == "A; B"


def test_merge_skips_patch_when_nothing_new(
    client: TrackingClient,
    service: FakeTrackingService,
) -> None:
    service.add_item(200, tags="Research; Incident Response")

    outcome = TagMerger(client).merge_tags(200, ["Incident Response"])

    assert outcome.status is MergeStatus.UNCHANGED
    assert service.calls("PATCH") == []
    assert service.tags_of(200) == "Research; Incident Response"


def test_merge_write_failure_is_reported_not_raised(
    client: TrackingClient,
    service: FakeTrackingService,
) -> None:
    service.add_item(200, tags="Research")
    service.failing_patches.add(200)

    outcome = TagMerger(client).merge_tags(200, ["Incident Response"])

    assert outcome.status is MergeStatus.FAILED
    assert outcome.item_id == 200
    assert "Rule violation" in (outcome.error or "")
    assert service.tags_of(200) == "Research"


def test_merge_read_failure_is_reported_not_raised(
    client: TrackingClient,
    service: FakeTrackingService,
) -> None:
    outcome = TagMerger(client).merge_tags(999, ["A"])

    assert outcome.status is MergeStatus.FAILED
    assert "does not exist" in (outcome.error or "")


def test_merge_access_denied_on_read_sends_no_patch(
    client: TrackingClient,
    service: FakeTrackingService,
) -> None:
    service.add_item(200, tags="Research")
    service.failing_reads.add(200)

    outcome = TagMerger(client).merge_tags(200, ["A"])

    assert outcome.status is MergeStatus.FAILED
    assert "Access denied" in (outcome.error or "")
    assert service.calls("PATCH") == []


def test_dry_run_reads_but_never_patches(
    client: TrackingClient,
    service: FakeTrackingService,
) -> None:
    service.add_item(200, tags="Research")

    outcome = TagMerger(client, dry_run=True).merge_tags(200, ["A"])

    assert outcome.status is MergeStatus.DRY_RUN
    assert outcome.tags_value == "Research; A"
    assert service.calls("PATCH") == []


def test_merge_requires_tags(client: TrackingClient) -> None:
    with pytest.raises(ValueError, match="at least one tag"):
        TagMerger(client).merge_tags(200, [])
