"""Merge a tag set onto one work item with a read-then-patch round trip."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from tag_cascade.http.client import ServiceError, TrackingClient
from tag_cascade.models import TAGS_FIELD, MergeOutcome, MergeStatus, TagSet, WorkItem

logger = logging.getLogger(__name__)


class TagMerger:
    """Union new tags into a work item's tag field.

    Each call is isolated: any failure during the read or the write is logged and
    returned as a ``failed`` outcome instead of being raised, so callers can keep
    processing sibling items.
    """

    def __init__(self, client: TrackingClient, *, dry_run: bool = False) -> None:
        self._client = client
        self._dry_run = dry_run

    def merge_tags(self, item_id: int, new_tags: Iterable[str]) -> MergeOutcome:
        tags = TagSet(new_tags)
        if not tags:
            raise ValueError("merge_tags requires at least one tag")

        try:
            item = WorkItem.from_payload(self._client.get(f"wit/workitems/{int(item_id)}"))
            existing = item.tags
            merged = existing.union(tags)
            added = merged.difference(existing)
            if not added:
                logger.info("Work item %d already has tags %s", item_id, tags)
                return MergeOutcome(
                    item_id=item_id,
                    status=MergeStatus.UNCHANGED,
                    tags_value=existing.serialize(),
                )
            value = merged.serialize()
            if self._dry_run:
                return MergeOutcome(
                    item_id=item_id,
                    status=MergeStatus.DRY_RUN,
                    added=added,
                    tags_value=value,
                )
            self._client.patch(
                f"wit/workitems/{int(item_id)}",
                [{"op": "add", "path": f"/fields/{TAGS_FIELD}", "value": value}],
            )
        except (ServiceError, AttributeError, KeyError, TypeError, ValueError) as exc:
            logger.error("Failed to merge tags onto work item %d: %s", item_id, exc)
            return MergeOutcome(item_id=item_id, status=MergeStatus.FAILED, error=str(exc))

        logger.info("Added tags %s to work item %d", added, item_id)
        return MergeOutcome(
            item_id=item_id,
            status=MergeStatus.UPDATED,
            added=added,
            tags_value=value,
        )
