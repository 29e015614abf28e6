"""Controllers for tag cascade CLI commands."""

from __future__ import annotations

from dataclasses import dataclass

from tag_cascade.config import Settings
from tag_cascade.models import CascadeSummary, MergeOutcome, MergeStatus, ParentOutcome
from tag_cascade.orchestrator import run_cascade


@dataclass(slots=True)
class CascadeRunCommand:
    """CLI inputs for one cascade run."""

    organization: str | None
    project: str | None
    token: str | None
    marker_tag: str | None
    dry_run: bool


@dataclass(slots=True)
class CascadeRunResult:
    """Printable run output plus overall success flag."""

    lines: list[str]
    success: bool


class CascadeCliController:
    """Coordinates cascade command execution."""

    def run(self, command: CascadeRunCommand) -> CascadeRunResult:
        settings = Settings.from_env().with_overrides(
            organization=command.organization,
            project=command.project,
            token=command.token,
            marker_tag=command.marker_tag,
        )
        summary = run_cascade(settings, dry_run=command.dry_run)
        return CascadeRunResult(
            lines=format_summary(summary, marker_tag=settings.marker_tag, dry_run=command.dry_run),
            success=not summary.has_failures,
        )


def format_summary(summary: CascadeSummary, *, marker_tag: str, dry_run: bool) -> list[str]:
    if not summary.parents:
        return [f"No work items tagged '{marker_tag}' found. Nothing to cascade."]

    lines: list[str] = []
    if not summary.marked_parents:
        lines.append(
            f"No work items tagged '{marker_tag}' found "
            f"({summary.parents_found} matched only as a substring). Nothing to cascade.",
        )
    for parent in summary.parents:
        lines.append(_format_parent(parent))
        lines.extend(_format_merge(merge) for merge in parent.merges)

    prefix = "Tag cascade dry run completed" if dry_run else "Tag cascade completed"
    lines.append(
        f"{prefix}: "
        f"parents={summary.parents_found} "
        f"children={summary.children_found} "
        f"updated={summary.count(MergeStatus.UPDATED)} "
        f"would_update={summary.count(MergeStatus.DRY_RUN)} "
        f"unchanged={summary.count(MergeStatus.UNCHANGED)} "
        f"failed={summary.count(MergeStatus.FAILED)} "
        f"failed_parents={summary.failed_parents}",
    )
    return lines


def _format_parent(parent: ParentOutcome) -> str:
    line = f"Parent {parent.parent_id}: tags={parent.propagated.serialize() or '-'}"
    if parent.error is not None:
        return f"{line} status=error error={parent.error}"
    if parent.skipped_reason is not None:
        return f"{line} status=skipped reason={parent.skipped_reason}"
    if not parent.child_ids:
        return f"{line} children=0 (no child work items found)"
    return f"{line} children={len(parent.child_ids)}"


def _format_merge(merge: MergeOutcome) -> str:
    if merge.status is MergeStatus.FAILED:
        return f"  FAIL work item {merge.item_id}: {merge.error}"
    if merge.status is MergeStatus.UNCHANGED:
        return f"  OK   work item {merge.item_id}: already tagged"
    if merge.status is MergeStatus.DRY_RUN:
        return f"  DRY  work item {merge.item_id}: would add {merge.added} -> {merge.tags_value}"
    return f"  OK   work item {merge.item_id}: added {merge.added} -> {merge.tags_value}"
