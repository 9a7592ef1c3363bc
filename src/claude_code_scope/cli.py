"""CLI for claude-code-scope."""

import logging
from pathlib import Path
from typing import Optional

import click

from . import __version__
from .config import Config
from .discovery import discover_sessions
from .models import SearchOptions
from .session_manager import SessionCache, SessionManager
from .toml_renderer import render_session_to_file, render_session_toml
from .tree import ConversationTree


def format_duration(seconds: float) -> str:
    """Format seconds as a short human readable duration."""
    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds}s"
    minutes, seconds = divmod(seconds, 60)
    if minutes < 60:
        return f"{minutes}m {seconds}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m"


def load_manager(cfg: Config, project: Optional[str] = None) -> SessionManager:
    """Discover and reconstruct every session under the configured projects dir.

    With ``project``, keep only sessions whose reconstructed project name matches.
    """
    paths = [path for path, _project_name in discover_sessions(cfg.projects_dir)]
    cache = SessionCache() if cfg.cache_enabled else None
    manager = SessionManager.from_files(
        paths,
        workers=cfg.workers,
        cache=cache,
        stream_threshold=cfg.stream_threshold_bytes,
    )
    if project:
        return SessionManager(manager.filter_sessions(project=project))
    return manager


def projects_dir_option(func):
    return click.option(
        "--projects-dir",
        type=click.Path(exists=True, path_type=Path),
        default=None,
        help="Path to Claude projects directory (overrides config)",
    )(func)


def apply_projects_dir(cfg: Config, projects_dir: Optional[Path]) -> None:
    if projects_dir:
        cfg.projects_dir = projects_dir


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    type=click.Path(path_type=Path),
    default=None,
    help="Path to config file",
)
@click.option("-v", "--verbose", is_flag=True, help="Log progress to stderr")
@click.pass_context
def main(ctx, config: Optional[Path], verbose: bool):
    """Browse, search and summarize Claude Code session logs."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["config"] = Config.load(config)
    ctx.obj["config_path"] = config


@main.command()
@projects_dir_option
@click.option("--project", type=str, default=None, help="Only list sessions for a project")
@click.option(
    "--min-duration",
    type=float,
    default=None,
    help="Only list sessions with at least this many seconds of responses",
)
@click.option("--contains", type=str, default=None, help="Only list sessions mentioning this text")
@click.option("--list-projects", is_flag=True, help="List project names instead of sessions")
@click.pass_context
def sessions(
    ctx,
    projects_dir: Optional[Path],
    project: Optional[str],
    min_duration: Optional[float],
    contains: Optional[str],
    list_projects: bool,
):
    """List reconstructed sessions, most recent first."""
    cfg: Config = ctx.obj["config"]
    apply_projects_dir(cfg, projects_dir)

    manager = load_manager(cfg, project)
    if list_projects:
        for name in manager.projects():
            click.echo(name)
        return

    selected = manager.filter_sessions(min_duration=min_duration)
    if contains:
        selected = SessionManager(selected).search_sessions(contains)
    if not selected:
        click.echo("No sessions found.")
        return

    ordered = sorted(selected, key=lambda s: s.last_activity, reverse=True)
    for session in ordered:
        started = session.start_time.astimezone().strftime("%Y-%m-%d %H:%M")
        click.echo(
            f"{session.session_id[:8]}  {started}  {session.project_name:<20}  "
            f"{session.total_conversations:>4} turns  {session.total_tools:>4} tools  "
            f"{session.summary}"
        )


@main.command()
@click.argument("query")
@projects_dir_option
@click.option("--regex", is_flag=True, help="Treat QUERY as a regular expression")
@click.option("--case-sensitive", is_flag=True, help="Match case exactly")
@click.option(
    "--max-results",
    type=int,
    default=None,
    help="Stop after this many matches, 0 for no limit (overrides config)",
)
@click.option("--thinking-only", is_flag=True, help="Only search thinking blocks")
@click.pass_context
def search(
    ctx,
    query: str,
    projects_dir: Optional[Path],
    regex: bool,
    case_sensitive: bool,
    max_results: Optional[int],
    thinking_only: bool,
):
    """Search conversations for QUERY ("a OR b" matches either term)."""
    cfg: Config = ctx.obj["config"]
    apply_projects_dir(cfg, projects_dir)

    options = SearchOptions(
        regex=regex,
        case_sensitive=case_sensitive,
        max_results=cfg.max_results if max_results is None else max_results,
        thinking_only=thinking_only,
    )
    results = load_manager(cfg).search(query, options)
    if not results:
        click.echo("No matches.")
        return

    for result in results:
        when = result.user_time.astimezone().strftime("%Y-%m-%d %H:%M")
        context = result.match_context.replace("\n", " ")
        click.echo(
            f"{result.session_id[:8]} #{result.conversation_index + 1} {when} "
            f"[{result.match_type}] {result.project_name}: ...{context}..."
        )
    click.echo(f"\n{len(results)} matches")


@main.command()
@projects_dir_option
@click.option(
    "--by",
    "group_by",
    type=click.Choice(["day", "project"]),
    default=None,
    help="Roll sessions up by local day or by project",
)
@click.pass_context
def stats(ctx, projects_dir: Optional[Path], group_by: Optional[str]):
    """Show session statistics."""
    cfg: Config = ctx.obj["config"]
    apply_projects_dir(cfg, projects_dir)
    manager = load_manager(cfg)

    if group_by == "day":
        for day in manager.daily_statistics():
            click.echo(
                f"{day.date.isoformat()}  {day.session_count:>3} sessions  "
                f"{day.conversation_count:>5} turns  {day.tool_usage_count:>5} tools  "
                f"{format_duration(day.total_duration):>8}  "
                f"{day.token_usage.total_tokens:,} tokens"
            )
        return
    if group_by == "project":
        for project in manager.project_statistics():
            click.echo(
                f"{project.project:<24}  {project.session_count:>3} sessions  "
                f"{project.conversation_count:>5} turns  {project.tool_usage_count:>5} tools  "
                f"{format_duration(project.total_duration):>8}  "
                f"{project.token_usage.total_tokens:,} tokens"
            )
        return

    s = manager.statistics()
    click.echo("Session Statistics")
    click.echo("=" * 40)
    click.echo(f"Total sessions:       {s['total_sessions']:,}")
    click.echo(f"Total conversations:  {s['total_conversations']:,}")
    click.echo(f"Total tool uses:      {s['total_tools']:,}")
    click.echo(f"Total tokens:         {s['total_tokens']:,}")
    click.echo(f"Time in responses:    {format_duration(s['total_duration'])}")


def echo_tree(tree: ConversationTree, node_id: str, depth: int = 0) -> None:
    node = tree.nodes[node_id]
    first_line = node.content.splitlines()[0] if node.content else ""
    if len(first_line) > 70:
        first_line = first_line[:67] + "..."
    marker = " (sidechain)" if node.is_sidechain else ""
    click.echo(f"{'  ' * depth}{node.type}{marker}: {first_line}")
    for child in tree.children_of(node_id):
        echo_tree(tree, child, depth + 1)


@main.command()
@click.argument("session_id")
@projects_dir_option
@click.pass_context
def tree(ctx, session_id: str, projects_dir: Optional[Path]):
    """Print the uuid tree of a session (prefix match on SESSION_ID)."""
    cfg: Config = ctx.obj["config"]
    apply_projects_dir(cfg, projects_dir)

    conversation_tree = load_manager(cfg).conversation_tree(session_id)
    if conversation_tree is None:
        raise click.ClickException(f"No session found matching '{session_id}'")

    for root in conversation_tree.roots:
        echo_tree(conversation_tree, root)


@main.command()
@projects_dir_option
@click.option(
    "--output-dir",
    type=click.Path(path_type=Path),
    default=Path("transcripts"),
    show_default=True,
    help="Output directory for TOML files",
)
@click.option(
    "--session",
    "session_id",
    type=str,
    default=None,
    help="Render a specific session by ID (prefix match)",
)
@click.option("--project", type=str, default=None, help="Render all sessions for a project")
@click.option("--stdout", is_flag=True, help="Output to stdout instead of files")
@click.pass_context
def render(
    ctx,
    projects_dir: Optional[Path],
    output_dir: Path,
    session_id: Optional[str],
    project: Optional[str],
    stdout: bool,
):
    """Render sessions as TOML transcripts."""
    cfg: Config = ctx.obj["config"]
    apply_projects_dir(cfg, projects_dir)
    manager = load_manager(cfg, project)

    if session_id:
        session = manager.get_session(session_id)
        if session is None:
            raise click.ClickException(f"No session found matching '{session_id}'")
        selected = [session]
    else:
        selected = manager.sessions

    if not selected:
        click.echo("No sessions found.")
        return

    for session in selected:
        if stdout:
            click.echo(render_session_toml(session))
            if len(selected) > 1:
                click.echo("\n---\n")
        else:
            output_path = render_session_to_file(session, output_dir)
            click.echo(f"Rendered: {output_path}")

    if not stdout:
        click.echo(f"\nRendered {len(selected)} sessions to {output_dir}")


@main.command()
@click.option(
    "--projects-dir",
    type=click.Path(path_type=Path),
    default=None,
    help="Set Claude projects directory",
)
@click.option("--workers", type=click.IntRange(min=1), default=None, help="Set loader threads")
@click.option("--max-results", type=int, default=None, help="Set default search limit")
@click.option("--show", is_flag=True, help="Show current configuration")
@click.pass_context
def config(
    ctx,
    projects_dir: Optional[Path],
    workers: Optional[int],
    max_results: Optional[int],
    show: bool,
):
    """Configure claude-code-scope settings."""
    cfg: Config = ctx.obj["config"]
    changes = (projects_dir, workers, max_results)

    if show or all(value is None for value in changes):
        click.echo("Current configuration:")
        click.echo(f"  Projects dir: {cfg.projects_dir}")
        click.echo(f"  Workers:      {cfg.workers}")
        click.echo(f"  Max results:  {cfg.max_results}")
        click.echo(f"  Cache:        {'on' if cfg.cache_enabled else 'off'}")
        return

    if projects_dir:
        cfg.projects_dir = projects_dir
    if workers is not None:
        cfg.workers = workers
    if max_results is not None:
        cfg.max_results = max_results

    cfg.save(ctx.obj["config_path"])
    click.echo("Configuration saved.")
    click.echo(f"  Projects dir: {cfg.projects_dir}")
    click.echo(f"  Workers:      {cfg.workers}")
    click.echo(f"  Max results:  {cfg.max_results}")


if __name__ == "__main__":
    main()
