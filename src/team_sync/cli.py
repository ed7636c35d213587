"""CLI entry point for team sync."""

import json
import sys
import time
from pathlib import Path
from typing import NoReturn

import click

from team_sync.annotations import build_decorations
from team_sync.config import CONFIG_FILENAME, ClientConfig, find_config, load_config, save_config
from team_sync.documents import RecordKind, fetch_by_path, fetch_file, put_file, record_kind
from team_sync.events import ChangeEvent, EventKind
from team_sync.models import AnchorRange, TeamRole
from team_sync.service import TeamSync
from team_sync.storage import FileDocumentStore, JsonKeyValueStore, StorageError
from team_sync.utils.logging import init_logger
from team_sync.watcher import start_watching


def fail(message: str) -> NoReturn:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def open_session(config: ClientConfig) -> TeamSync:
    """Build a TeamSync over the stores named in ``config``."""
    return TeamSync(
        FileDocumentStore(config.store_dir),
        JsonKeyValueStore(config.local_state),
        config.current_user,
        context_chars=config.context_chars,
    )


def read_file_text(sync: TeamSync, path: str) -> str:
    try:
        text = fetch_by_path(sync.store, path)
    except StorageError as e:
        fail(str(e))
    if text is None:
        fail(f"File not found in store: {path}")
    return text


@click.group()
@click.version_option(version="0.1.0", prog_name="team-sync")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help=f"Config file (default: nearest {CONFIG_FILENAME})",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug output")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, verbose: bool):
    """Team sync - shared annotations, change tracking and diffs."""
    init_logger(verbose=verbose)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


def get_session(ctx: click.Context) -> TeamSync:
    config_path = ctx.obj.get("config_path") or find_config(Path.cwd())
    if config_path is None:
        fail(f"No {CONFIG_FILENAME} found. Run 'team-sync init' first.")
    try:
        config = load_config(config_path)
    except ValueError as e:
        fail(str(e))
    try:
        return open_session(config)
    except StorageError as e:
        fail(str(e))


@cli.command()
@click.option("--user", "username", required=True, help="Your store username")
@click.option("--team", "team_name", default=None, help="Create a team with you as admin")
@click.option(
    "--dir",
    "directory",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("."),
    help="Directory to write the config into (default: current directory)",
)
def init(username: str, team_name: str | None, directory: Path):
    """Write a config file and optionally create the team."""
    config_path = directory / CONFIG_FILENAME
    if config_path.exists():
        fail(f"{config_path} already exists")

    config = ClientConfig(current_user=username)
    save_config(config, config_path)
    click.echo(f"Wrote {config_path}")

    if team_name:
        try:
            sync = open_session(load_config(config_path))
            created = sync.team.initialize_team(team_name, username)
        except StorageError as e:
            fail(str(e))
        if not created:
            fail("A team is already configured for this store")
        click.echo(f"Created team '{team_name}' with {username} as admin")


@cli.group()
def member():
    """Manage team members."""


@member.command("add")
@click.argument("username")
@click.option(
    "--role",
    type=click.Choice([r.value for r in TeamRole]),
    default=TeamRole.EDITOR.value,
    show_default=True,
)
@click.pass_context
def member_add(ctx: click.Context, username: str, role: str):
    """Add a member, or change an existing member's role."""
    sync = get_session(ctx)
    if not sync.is_admin:
        fail("Only team admins can manage members")
    try:
        added = sync.team.add_member(username, TeamRole(role))
    except StorageError as e:
        fail(str(e))
    if not added:
        fail(f"Could not add {username}")
    click.echo(f"{username} is now {role}")


@member.command("remove")
@click.argument("username")
@click.pass_context
def member_remove(ctx: click.Context, username: str):
    """Remove a member from the team."""
    sync = get_session(ctx)
    if not sync.is_admin:
        fail("Only team admins can manage members")
    try:
        removed = sync.team.remove_member(username)
    except StorageError as e:
        fail(str(e))
    if not removed:
        fail(f"{username} is not a member")
    click.echo(f"Removed {username}")


@member.command("list")
@click.pass_context
def member_list(ctx: click.Context):
    """List members and their roles."""
    sync = get_session(ctx)
    members = sync.team.get_members()
    if not members:
        click.echo("No team configured")
        return
    for username in sorted(members):
        click.echo(f"{username}\t{members[username].role.value}")


@cli.command()
@click.argument("path")
@click.argument("source", type=click.File("r", encoding="utf-8"), default="-")
@click.pass_context
def put(ctx: click.Context, path: str, source):
    """Store new content for PATH, read from SOURCE (default: stdin)."""
    sync = get_session(ctx)
    content = source.read()
    try:
        current = fetch_file(sync.store, path)
        rev = put_file(
            sync.store, path, content, sync.current_user, current.rev if current else None
        )
    except (ValueError, StorageError) as e:
        fail(str(e))
    if rev is None:
        fail(f"{path} changed while writing, try again")
    # Your own edit is seen by definition
    sync.mark_file_read(path)
    click.echo(rev)


@cli.command()
@click.argument("path")
@click.argument("content")
@click.option("--line", "start_line", type=int, required=True, help="Start line (0-based)")
@click.option("--char", "start_char", type=int, default=0, help="Start column (0-based)")
@click.option("--end-line", type=int, default=None, help="End line (default: start line)")
@click.option("--end-char", type=int, default=None, help="End column, exclusive (default: end of line)")
@click.option("--mention", "mentions", multiple=True, help="Username to mention (repeatable)")
@click.option("--reply-to", "parent_id", default=None, help="Annotation id to reply to")
@click.pass_context
def annotate(
    ctx: click.Context,
    path: str,
    content: str,
    start_line: int,
    start_char: int,
    end_line: int | None,
    end_char: int | None,
    mentions: tuple[str, ...],
    parent_id: str | None,
):
    """Anchor an annotation to a span of PATH."""
    sync = get_session(ctx)
    text = read_file_text(sync, path)
    lines = text.split("\n")
    end_line = start_line if end_line is None else end_line
    if not 0 <= start_line < len(lines) or not 0 <= end_line < len(lines):
        fail(f"Line out of range (file has {len(lines)} lines)")
    if end_char is None:
        end_char = len(lines[end_line])
    if not 0 <= start_char <= len(lines[start_line]):
        fail(f"Column {start_char} out of range for line {start_line} ({len(lines[start_line])} chars)")
    if not 0 <= end_char <= len(lines[end_line]):
        fail(f"Column {end_char} out of range for line {end_line} ({len(lines[end_line])} chars)")

    try:
        selection = AnchorRange(
            start_line=start_line, start_char=start_char, end_line=end_line, end_char=end_char
        )
        annotation = sync.create_annotation(
            path, text, selection, content, mentions=list(mentions), parent_id=parent_id
        )
    except (ValueError, StorageError) as e:
        fail(str(e))
    click.echo(annotation.id)


@cli.command()
@click.argument("path")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.pass_context
def annotations(ctx: click.Context, path: str, json_output: bool):
    """List the annotations of PATH at their current positions."""
    sync = get_session(ctx)
    text = read_file_text(sync, path)
    try:
        located = sync.refresh_annotations(path, text)
    except StorageError as e:
        fail(str(e))

    if json_output:
        output = [
            {
                "id": a.id,
                "range": a.range.model_dump(),
                "author": a.author,
                "content": a.content,
                "resolved": a.resolved,
                "reply_count": a.reply_count,
                "orphaned": a.orphaned,
            }
            for a in located
        ]
        click.echo(json.dumps(output, indent=2))
        return

    if not located:
        click.echo("No annotations")
        return
    shown = {d.annotation_id for d in build_decorations(text, located)}
    for a in located:
        flags = []
        if a.resolved:
            flags.append("resolved")
        if a.orphaned:
            flags.append("orphaned")
        if a.id not in shown:
            flags.append("hidden")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        replies = f" ({a.reply_count} replies)" if a.reply_count else ""
        click.echo(f"{a.id} {a.range} {a.author}: {a.content}{replies}{suffix}")


@cli.command()
@click.argument("annotation_id")
@click.pass_context
def resolve(ctx: click.Context, annotation_id: str):
    """Mark an annotation resolved."""
    sync = get_session(ctx)
    try:
        resolved = sync.annotations.resolve(annotation_id)
    except StorageError as e:
        fail(str(e))
    if not resolved:
        fail(f"Annotation not found: {annotation_id}")
    click.echo(f"Resolved {annotation_id}")


@cli.command()
@click.argument("path")
@click.option("--html", "html_output", is_flag=True, help="Print the HTML markup")
@click.pass_context
def diff(ctx: click.Context, path: str, html_output: bool):
    """Show what changed in PATH since you last read it."""
    sync = get_session(ctx)
    view = sync.diff_since_last_seen(path)
    if view is None:
        fail(f"File not found in store: {path}")

    if html_output:
        click.echo(view.markup)
        return
    colors = {-1: "red", 0: None, 1: "green"}
    for segment in view.segments:
        click.echo(click.style(segment.text, fg=colors[segment.op]), nl=False)
    click.echo()
    click.echo(f"+{view.summary.added} -{view.summary.removed}")


@cli.command()
@click.argument("path")
@click.pass_context
def read(ctx: click.Context, path: str):
    """Mark the current revision of PATH as read."""
    sync = get_session(ctx)
    if not sync.mark_file_read(path):
        fail(f"Could not mark {path} as read")
    click.echo(f"Marked {path} as read")


@cli.command()
@click.pass_context
def status(ctx: click.Context):
    """Show team, role and files with unseen changes."""
    sync = get_session(ctx)
    if sync.config is not None:
        role = sync.current_role.value if sync.current_role else "not a member"
        click.echo(f"Team: {sync.config.team_name} ({sync.current_user}, {role})")
    else:
        click.echo(f"No team configured ({sync.current_user})")

    try:
        docs = sync.store.list_by_prefix("")
    except StorageError as e:
        fail(str(e))
    unread = [
        doc.id
        for doc in docs
        if record_kind(doc.id) == RecordKind.FILE and sync.is_file_unread(doc.id)
    ]
    if not unread:
        click.echo("No unread changes")
        return
    click.echo("Unread:")
    for path in unread:
        click.echo(f"  {path}")


@cli.command()
@click.pass_context
def watch(ctx: click.Context):
    """Print changes by teammates as they arrive."""
    sync = get_session(ctx)

    def show_change(event: ChangeEvent) -> None:
        if event.modified_by != sync.current_user:
            click.echo(f"[{event.timestamp:%H:%M:%S}] {event.modified_by} changed {event.file_path}")

    sync.hub.subscribe(EventKind.FILE_CHANGED, show_change)
    observer = start_watching(sync.store, sync)
    click.echo(f"Watching {sync.store.docs_dir} (Ctrl+C to stop)")
    try:
        while observer.is_alive():
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        observer.stop()
        observer.join()
