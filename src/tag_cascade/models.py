"""Domain models for work items, tag sets, and cascade outcomes."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

TAGS_FIELD = "System.Tags"
PARENT_FIELD = "System.Parent"
WORK_ITEM_TYPE_FIELD = "System.WorkItemType"
TAG_SEPARATOR = ";"
TAG_JOINER = "; "
SKIP_MARKER_NOT_PRESENT = "marker not present"
SKIP_NOTHING_TO_PROPAGATE = "no tags to propagate"


class TagSet:
    """Ordered, case-sensitive set of tag names.

    The service stores tags as one delimited string. Parsing trims whitespace and
    drops empty entries; serialization joins with ``"; "`` and keeps insertion
    order so unchanged tag sets round-trip to the same string.
    """

    __slots__ = ("_tags",)

    def __init__(self, tags: Iterable[str] = ()) -> None:
        self._tags: dict[str, None] = {}
        for tag in tags:
            cleaned = tag.strip()
            if cleaned:
                self._tags.setdefault(cleaned, None)

    @classmethod
    def parse(cls, value: object) -> TagSet:
        if not value:
            return cls()
        if not isinstance(value, str):
            raise TypeError(f"Tag field must be a string, got {type(value).__name__}")
        return cls(value.split(TAG_SEPARATOR))

    def serialize(self) -> str:
        return TAG_JOINER.join(self._tags)

    def union(self, other: Iterable[str]) -> TagSet:
        """Return tags of this set followed by unseen tags of ``other``."""

        return TagSet([*self._tags, *other])

    def without(self, tag: str) -> TagSet:
        return TagSet(existing for existing in self._tags if existing != tag)

    def difference(self, other: Iterable[str]) -> TagSet:
        excluded = set(other)
        return TagSet(existing for existing in self._tags if existing not in excluded)

    def __contains__(self, tag: object) -> bool:
        return tag in self._tags

    def __iter__(self) -> Iterator[str]:
        return iter(self._tags)

    def __len__(self) -> int:
        return len(self._tags)

    def __bool__(self) -> bool:
        return bool(self._tags)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, TagSet):
            return list(self._tags) == list(other._tags)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(tuple(self._tags))

    def __repr__(self) -> str:
        return f"TagSet({list(self._tags)!r})"

    def __str__(self) -> str:
        return self.serialize()


@dataclass(slots=True)
class WorkItem:
    """Work item snapshot as returned by the tracking service."""

    id: int
    revision: int
    fields: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> WorkItem:
        raw_fields = payload.get("fields") or {}
        if not isinstance(raw_fields, Mapping):
            raise ValueError(f"Work item fields must be an object, got {raw_fields!r}")
        return cls(
            id=int(payload["id"]),
            revision=int(payload.get("rev", 0)),
            fields=dict(raw_fields),
        )

    @property
    def tags(self) -> TagSet:
        return TagSet.parse(self.fields.get(TAGS_FIELD))

    @property
    def parent_id(self) -> int | None:
        value = self.fields.get(PARENT_FIELD)
        if value is None:
            return None
        return int(value)


class MergeStatus(str, Enum):
    """Result of one tag merge attempt."""

    UPDATED = "updated"
    UNCHANGED = "unchanged"
    DRY_RUN = "dry_run"
    FAILED = "failed"


@dataclass(slots=True)
class MergeOutcome:
    """Per-item result of merging tags onto one work item."""

    item_id: int
    status: MergeStatus
    added: TagSet = field(default_factory=TagSet)
    tags_value: str | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status is not MergeStatus.FAILED


@dataclass(slots=True)
class ParentOutcome:
    """Cascade result for one marked parent."""

    parent_id: int
    propagated: TagSet
    child_ids: list[int] = field(default_factory=list)
    merges: list[MergeOutcome] = field(default_factory=list)
    skipped_reason: str | None = None
    error: str | None = None


@dataclass(slots=True)
class CascadeSummary:
    """Aggregated result of one cascade run."""

    parents: list[ParentOutcome] = field(default_factory=list)

    @property
    def parents_found(self) -> int:
        return len(self.parents)

    @property
    def marked_parents(self) -> int:
        """Parents whose parsed tags hold the exact marker, not just a substring match."""

        return sum(
            1 for parent in self.parents if parent.skipped_reason != SKIP_MARKER_NOT_PRESENT
        )

    @property
    def children_found(self) -> int:
        return sum(len(parent.child_ids) for parent in self.parents)

    @property
    def merges(self) -> list[MergeOutcome]:
        return [merge for parent in self.parents for merge in parent.merges]

    def count(self, status: MergeStatus) -> int:
        return sum(1 for merge in self.merges if merge.status is status)

    @property
    def failed_parents(self) -> int:
        return sum(1 for parent in self.parents if parent.error is not None)

    @property
    def has_failures(self) -> bool:
        return self.failed_parents > 0 or self.count(MergeStatus.FAILED) > 0
