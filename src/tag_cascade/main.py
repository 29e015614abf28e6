"""CLI entrypoint for tag-cascade."""

import logging

import rich_click as click

from tag_cascade import __version__
from tag_cascade.controllers import CascadeCliController, CascadeRunCommand
from tag_cascade.query import QueryFault

click.rich_click.USE_MARKDOWN = True
CASCADE_CONTROLLER = CascadeCliController()


@click.group()
@click.version_option(version=__version__, prog_name="tag-cascade")
def tag_cascade() -> None:
    """Copy tags from marker-tagged parent work items onto their children."""


def _connection_options(func):
    func = click.option(
        "--marker-tag",
        default=None,
        help="Marker tag identifying cascade parents. Defaults to TAG_CASCADE_MARKER_TAG.",
    )(func)
    func = click.option(
        "--token",
        default=None,
        help="Personal access token. Defaults to TAG_CASCADE_TOKEN.",
    )(func)
    func = click.option(
        "--project",
        default=None,
        help="Project name. Defaults to TAG_CASCADE_PROJECT.",
    )(func)
    func = click.option(
        "--organization",
        default=None,
        help="Organization name. Defaults to TAG_CASCADE_ORGANIZATION.",
    )(func)
    return click.option(
        "--verbose/--quiet",
        default=False,
        show_default=True,
        help="Log requests and per-item progress to stderr.",
    )(func)


@tag_cascade.command("run")
@_connection_options
@click.option(
    "--dry-run/--no-dry-run",
    default=False,
    show_default=True,
    help="Compute merges without patching any work item.",
)
def cascade_run(  # noqa: PLR0913
    organization: str | None,
    project: str | None,
    token: str | None,
    marker_tag: str | None,
    verbose: bool,
    dry_run: bool,
) -> None:
    """Run one cascade pass over all marker-tagged parents."""

    _execute(
        CascadeRunCommand(
            organization=organization,
            project=project,
            token=token,
            marker_tag=marker_tag,
            dry_run=dry_run,
        ),
        verbose=verbose,
    )


@tag_cascade.command("preview")
@_connection_options
def cascade_preview(
    organization: str | None,
    project: str | None,
    token: str | None,
    marker_tag: str | None,
    verbose: bool,
) -> None:
    """Show which tags would be added to which children, without writing."""

    _execute(
        CascadeRunCommand(
            organization=organization,
            project=project,
            token=token,
            marker_tag=marker_tag,
            dry_run=True,
        ),
        verbose=verbose,
    )


def _execute(command: CascadeRunCommand, *, verbose: bool) -> None:
    _configure_logging(verbose)
    try:
        result = CASCADE_CONTROLLER.run(command)
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc
    except QueryFault as exc:
        raise click.ClickException(f"Could not list cascade parents: {exc}") from exc
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Tag cascade finished with failures.")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    tag_cascade()
