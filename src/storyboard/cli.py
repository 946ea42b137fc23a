"""Admin CLI for storyboard projects.

Entry point: ``manage-projects`` (see ``manage_projects``).
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import TYPE_CHECKING

from rich.console import Console

if TYPE_CHECKING:
    from datetime import datetime

    from storyboard.models import Project
    from storyboard.store.protocol import DocumentStore
    from storyboard.sync.controller import DocumentSyncController

console = Console()


def _format_timestamp(dt: datetime | None) -> str:
    """Format a document timestamp for display."""
    if dt is None:
        return "Never"
    return dt.strftime("%Y-%m-%d %H:%M")


def _build_project_parser():
    """Build argparse parser for manage-projects subcommands."""
    import argparse

    parser = argparse.ArgumentParser(
        prog="manage-projects",
        description="Create, inspect and share storyboard projects.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    # create
    create_p = sub.add_parser("create", help="Create a project for a user")
    create_p.add_argument("owner_id", help="Owner's user id")
    create_p.add_argument("--title", default=None, help="Project title")

    # list
    list_p = sub.add_parser("list", help="List a user's projects")
    list_p.add_argument("owner_id", help="Owner's user id")

    # show
    show_p = sub.add_parser("show", help="Show scenes and frames of a project")
    show_p.add_argument("project_id", help="Project id")

    # rename
    rename_p = sub.add_parser("rename", help="Change a project's title")
    rename_p.add_argument("project_id", help="Project id")
    rename_p.add_argument("title", help="New title")

    # share
    share_p = sub.add_parser("share", help="Set link access and print the share link")
    share_p.add_argument("project_id", help="Project id")
    share_p.add_argument(
        "--access",
        choices=["none", "viewer", "editor"],
        default="viewer",
        help="Access for link holders (default: viewer)",
    )

    # watch
    watch_p = sub.add_parser("watch", help="Print every change to a project live")
    watch_p.add_argument("project_id", help="Project id")

    return parser


async def _require_project(
    store: DocumentStore, project_id: str, con: Console
) -> Project:
    """Load a project or exit with error."""
    from storyboard.projects import load_project

    project = await load_project(store, project_id)
    if project is None:
        con.print(f"[red]Error:[/] no project found with id '{project_id}'")
        sys.exit(1)
    return project


async def _cmd_create(
    owner_id: str,
    *,
    store: DocumentStore,
    title: str | None = None,
    console: Console | None = None,
) -> str:
    """Create a project owned by ``owner_id``."""
    from storyboard.auth.models import UserIdentity
    from storyboard.models import DEFAULT_PROJECT_TITLE
    from storyboard.projects import create_project

    con = console or globals()["console"]
    title = title or DEFAULT_PROJECT_TITLE
    project_id = await create_project(store, UserIdentity(id=owner_id), title)
    con.print(f"[green]Created[/] project '{title}' (id={project_id})")
    return project_id


async def _cmd_list(
    owner_id: str,
    *,
    store: DocumentStore,
    console: Console | None = None,
) -> None:
    """List a user's projects as a Rich table."""
    from rich.table import Table

    from storyboard.projects import list_projects

    con = console or globals()["console"]
    summaries = await list_projects(store, owner_id)

    if not summaries:
        con.print(f"[yellow]No projects found for '{owner_id}'.[/]")
        return

    table = Table(title="Projects")
    table.add_column("ID", style="cyan")
    table.add_column("Title")
    table.add_column("Last Edited")

    for s in summaries:
        table.add_row(s.id, s.title, _format_timestamp(s.last_edited))

    con.print(table)


async def _cmd_show(
    project_id: str,
    *,
    store: DocumentStore,
    console: Console | None = None,
) -> None:
    """Show a project's settings and its frames scene by scene."""
    from rich.table import Table

    con = console or globals()["console"]
    project = await _require_project(store, project_id, con)

    con.print(f"\n[bold]{project.project_title}[/] ({project.aspect_ratio.value})")
    con.print(f"  Owner: {project.owner_id}")
    con.print(f"  Link access: {project.public_access.value}")
    con.print(f"  Last edited: {_format_timestamp(project.last_edited)}")
    con.print(f"  ID: [dim]{project.id}[/]")

    if not project.sequences:
        con.print("\n  [dim]No scenes.[/]")
        return

    table = Table(title="Frames")
    table.add_column("#", justify="right")
    table.add_column("Scene")
    table.add_column("Frame", style="dim")
    table.add_column("Media")
    table.add_column("Script")
    table.add_column("Comments", justify="right")

    number = 0
    for scene in project.sequences:
        if not scene.frames:
            table.add_row("", scene.title, "[dim](empty)[/]", "", "", "")
        for frame in scene.frames:
            number += 1
            table.add_row(
                str(number),
                scene.title,
                frame.id,
                frame.media.kind,
                frame.script,
                str(len(frame.comments)),
            )

    con.print(table)


async def _cmd_rename(
    project_id: str,
    title: str,
    *,
    controller: DocumentSyncController,
    console: Console | None = None,
) -> None:
    """Change a project's title with a manual save."""
    from storyboard.editing import rename_project

    con = console or globals()["console"]
    project = await _require_project(controller.store, project_id, con)
    result = await controller.request_manual_save(
        project_id, rename_project(project, title)
    )
    if not result.success:
        con.print(f"[red]Error:[/] rename failed: {result.error}")
        sys.exit(1)
    con.print(f"[green]Renamed[/] '{project.project_title}' to '{title}'")


async def _cmd_share(
    project_id: str,
    *,
    access: str,
    controller: DocumentSyncController,
    base_url: str,
    console: Console | None = None,
) -> None:
    """Set ``publicAccess`` and print the link to hand out."""
    from storyboard.editing import update_sharing
    from storyboard.projects import share_url

    con = console or globals()["console"]
    project = await _require_project(controller.store, project_id, con)
    result = await controller.request_manual_save(
        project_id, update_sharing(project, public_access=access)
    )
    if not result.success:
        con.print(f"[red]Error:[/] sharing update failed: {result.error}")
        sys.exit(1)
    if access == "none":
        con.print("[yellow]Link sharing disabled.[/] Only named users can open it.")
        return
    con.print(f"[green]Link access:[/] {access}")
    con.print(share_url(base_url, project_id, access))


async def _cmd_watch(
    project_id: str,
    *,
    controller: DocumentSyncController,
    console: Console | None = None,
) -> None:
    """Subscribe and print each snapshot until the feed ends or Ctrl-C."""
    from storyboard.sync.controller import SyncStatus

    con = console or globals()["console"]
    stopped = asyncio.Event()

    def _print_change(ctl: DocumentSyncController) -> None:
        if ctl.status is SyncStatus.ERROR:
            con.print(f"[red]Error:[/] {ctl.error}")
            stopped.set()
        elif ctl.document is not None and ctl.status is SyncStatus.IDLE:
            frames = sum(1 for _ in ctl.document.all_frames())
            con.print(
                f"[cyan]{_format_timestamp(ctl.document.last_edited)}[/] "
                f"{ctl.document.project_title} "
                f"[dim]({len(ctl.document.sequences)} scenes, {frames} frames)[/]"
            )

    remove = controller.add_listener(_print_change)
    try:
        await controller.subscribe(project_id)
        if controller.status is not SyncStatus.ERROR:
            con.print(f"[dim]Watching {project_id}; Ctrl-C to stop.[/]")
            await stopped.wait()
    finally:
        remove()
        controller.unsubscribe()


def manage_projects() -> None:
    """Create, inspect and share storyboard projects.

    Usage:
        manage-projects <command> [options]

    Commands:
        create <owner_id>     Create a project (--title to name it)
        list <owner_id>       List a user's projects, newest first
        show <project_id>     Show scenes and frames
        rename <project_id> <title>  Change the title
        share <project_id>    Set link access (--access) and print the link
        watch <project_id>    Print every change live until Ctrl-C
    """
    from storyboard import setup_logging
    from storyboard.config import get_settings

    parser = _build_project_parser()
    args = parser.parse_args(sys.argv[1:])

    settings = get_settings()
    if not settings.database.url:
        console.print("[red]Error:[/] DATABASE__URL not set")
        sys.exit(1)

    setup_logging(console_level=logging.WARNING)

    async def _run() -> None:
        from storyboard.db import close_db, get_engine, init_db, verify_schema
        from storyboard.store.sql import SqlDocumentStore
        from storyboard.sync.controller import DocumentSyncController

        await init_db()
        try:
            await verify_schema(get_engine())
        except RuntimeError as exc:
            console.print(f"[red]Error:[/] {exc}")
            await close_db()
            sys.exit(1)

        store = SqlDocumentStore()
        controller = DocumentSyncController(store)
        try:
            match args.command:
                case "create":
                    await _cmd_create(args.owner_id, store=store, title=args.title)
                case "list":
                    await _cmd_list(args.owner_id, store=store)
                case "show":
                    await _cmd_show(args.project_id, store=store)
                case "rename":
                    await _cmd_rename(
                        args.project_id, args.title, controller=controller
                    )
                case "share":
                    await _cmd_share(
                        args.project_id,
                        access=args.access,
                        controller=controller,
                        base_url=settings.app.base_url,
                    )
                case "watch":
                    await _cmd_watch(args.project_id, controller=controller)
        finally:
            await controller.close()
            await store.close()
            await close_db()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped.[/]")
