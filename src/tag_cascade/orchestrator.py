"""Cascade marker-tagged parents' tags onto their direct children."""

from __future__ import annotations

import logging

from tag_cascade.config import Settings
from tag_cascade.http.client import TrackingClient
from tag_cascade.models import (
    SKIP_MARKER_NOT_PRESENT,
    SKIP_NOTHING_TO_PROPAGATE,
    TAGS_FIELD,
    CascadeSummary,
    ParentOutcome,
    TagSet,
    WorkItem,
)
from tag_cascade.query import ChildResolver, QueryFault, WorkItemQuery, tags_contain
from tag_cascade.tagging import TagMerger

logger = logging.getLogger(__name__)


class CascadeOrchestrator:
    """One linear pass: find marked parents, resolve children, merge tags.

    Failure to list parents is fatal and raised as :class:`QueryFault`. Failure to
    list one parent's children is recorded on that parent and the run moves on.
    Merge failures are isolated per child by :class:`TagMerger`.
    """

    def __init__(
        self,
        *,
        marker_tag: str,
        query: WorkItemQuery,
        children: ChildResolver,
        merger: TagMerger,
    ) -> None:
        self._marker_tag = marker_tag
        self._query = query
        self._children = children
        self._merger = merger

    @classmethod
    def from_client(
        cls,
        client: TrackingClient,
        *,
        marker_tag: str,
        dry_run: bool = False,
    ) -> CascadeOrchestrator:
        query = WorkItemQuery(client, fields=(TAGS_FIELD,))
        return cls(
            marker_tag=marker_tag,
            query=query,
            children=ChildResolver(query),
            merger=TagMerger(client, dry_run=dry_run),
        )

    def run(self) -> CascadeSummary:
        summary = CascadeSummary()
        parents = self._query.query(tags_contain(self._marker_tag))
        if not parents:
            logger.info("No work items tagged %r found", self._marker_tag)
            return summary

        for parent in parents:
            summary.parents.append(self._cascade_parent(parent))
        if not summary.marked_parents:
            logger.info("No work items tagged exactly %r found", self._marker_tag)
        return summary

    def _cascade_parent(self, parent: WorkItem) -> ParentOutcome:
        outcome = ParentOutcome(parent_id=parent.id, propagated=TagSet())
        try:
            parent_tags = parent.tags
        except TypeError as exc:
            outcome.error = str(exc)
            logger.error("Failed to read tags of work item %d: %s", parent.id, exc)
            return outcome

        outcome.propagated = parent_tags.without(self._marker_tag)
        if self._marker_tag not in parent_tags:
            # CONTAINS is a substring match, so e.g. "CascadeTagsOld" also matches.
            outcome.skipped_reason = SKIP_MARKER_NOT_PRESENT
            logger.info("Work item %d matched %r only as a substring", parent.id, self._marker_tag)
            return outcome
        if not outcome.propagated:
            outcome.skipped_reason = SKIP_NOTHING_TO_PROPAGATE
            logger.info("Work item %d carries only the marker tag", parent.id)
            return outcome

        try:
            children = self._children.find_children(parent.id)
        except QueryFault as exc:
            outcome.error = str(exc)
            logger.error("Failed to resolve children of work item %d: %s", parent.id, exc)
            return outcome

        outcome.child_ids = [child.id for child in children]
        for child in children:
            outcome.merges.append(self._merger.merge_tags(child.id, outcome.propagated))
        return outcome


def run_cascade(
    settings: Settings,
    *,
    dry_run: bool = False,
    client: TrackingClient | None = None,
) -> CascadeSummary:
    """Validate settings and run one cascade pass against the tracking service."""

    settings.validate()
    if client is not None:
        return CascadeOrchestrator.from_client(
            client,
            marker_tag=settings.marker_tag,
            dry_run=dry_run,
        ).run()
    with TrackingClient(settings) as owned_client:
        return CascadeOrchestrator.from_client(
            owned_client,
            marker_tag=settings.marker_tag,
            dry_run=dry_run,
        ).run()
