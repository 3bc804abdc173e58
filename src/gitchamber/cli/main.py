"""Command line for gitchamber."""

import asyncio
import json
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from ..core.config import load_config
from ..core.models import CreateWorktreeRequest, RemoveWorktreeRequest
from ..errors import ErrorTranslator, GitChamberError
from ..service import GitService
from ..utils.rich_logging import setup_rich_logging


console = Console()
translator = ErrorTranslator()


def _run(ctx, coro):
    """Run one service call, rendering git failures as friendly errors."""
    try:
        return asyncio.run(coro)
    except GitChamberError as e:
        console.print(translator.format_for_cli(translator.translate(e)))
        ctx.exit(1)


@click.group()
@click.option("--directory", "-C", default=".", help="Repository directory")
@click.option("--config", "config_path", default="gitchamber.yaml", help="Config file")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def cli(ctx, directory, config_path, verbose):
    """gitchamber - git worktrees for parallel coding sessions."""
    ctx.ensure_object(dict)
    log = setup_rich_logging(log_level="DEBUG" if verbose else "WARNING")
    ctx.obj["directory"] = str(Path(directory).expanduser().resolve())
    log.set_repo_context(repo=Path(ctx.obj["directory"]).name, operation=ctx.invoked_subcommand)
    log.debug(f"Using config {config_path}")
    ctx.obj["service"] = GitService(config=load_config(Path(config_path)))


@cli.command()
@click.pass_context
def info(ctx):
    """Show effective settings."""
    table = Table(title="gitchamber")
    table.add_column("Setting")
    table.add_column("Value")
    for key, value in ctx.obj["service"].describe().items():
        table.add_row(key, value)
    console.print(table)


@cli.command()
@click.pass_context
def status(ctx):
    """Show branch, tracking and changed files."""
    service = ctx.obj["service"]
    result = _run(ctx, service.get_status(ctx.obj["directory"]))

    head = result.current or "(detached)"
    line = f"[bold]{head}[/]"
    if result.tracking:
        line += f" -> {result.tracking} [green]+{result.ahead}[/] [red]-{result.behind}[/]"
    console.print(line)

    if result.merge_in_progress:
        console.print(f"[yellow]Merge in progress ({result.merge_in_progress.head})[/]")
    if result.rebase_in_progress:
        console.print(f"[yellow]Rebase in progress ({result.rebase_in_progress.head_name})[/]")

    if result.is_clean:
        console.print("[green]Working tree clean[/]")
        return

    table = Table()
    table.add_column("Index")
    table.add_column("Worktree")
    table.add_column("Path")
    for entry in result.files:
        table.add_row(entry.index, entry.working_dir, entry.path)
    console.print(table)


@cli.command()
@click.option("--all", "show_all", is_flag=True, help="Include remote-tracking branches")
@click.pass_context
def branches(ctx, show_all):
    """List branches."""
    service = ctx.obj["service"]
    result = _run(ctx, service.get_branches(ctx.obj["directory"]))

    table = Table()
    table.add_column("")
    table.add_column("Branch")
    table.add_column("Commit")
    table.add_column("Tracking")
    for name in result.all:
        if name.startswith("remotes/") and not show_all:
            continue
        detail = result.branches[name]
        tracking = detail.tracking or ""
        if tracking and (detail.ahead or detail.behind):
            tracking += f" (+{detail.ahead or 0}/-{detail.behind or 0})"
        table.add_row("*" if detail.current else "", name, detail.commit[:8], tracking)
    console.print(table)


@cli.command()
@click.option("--max", "-n", "max_count", default=20, help="Number of commits")
@click.option("--file", "file_path", default=None, help="Limit to one path")
@click.pass_context
def log(ctx, max_count, file_path):
    """Show recent commits."""
    service = ctx.obj["service"]
    result = _run(ctx, service.get_log(ctx.obj["directory"], max_count=max_count, file=file_path))

    table = Table()
    table.add_column("Commit")
    table.add_column("Author")
    table.add_column("Date")
    table.add_column("Message")
    table.add_column("+/-")
    for entry in result.all:
        table.add_row(
            entry.hash[:8],
            entry.author_name,
            entry.date,
            entry.message,
            f"+{entry.insertions}/-{entry.deletions}",
        )
    console.print(table)


# ============== Worktrees ==============

@cli.group()
def worktree():
    """Manage worktrees."""


def _build_request(mode, name, branch, existing, start_ref, start_command, upstream, remote_name, remote_url):
    return CreateWorktreeRequest(
        mode=mode,
        worktree_name=name,
        branch_name=branch,
        existing_branch=existing,
        start_ref=start_ref,
        start_command=start_command,
        set_upstream=upstream,
        ensure_remote_name=remote_name,
        ensure_remote_url=remote_url,
    )


def _worktree_options(func):
    options = [
        click.option("--mode", type=click.Choice(["new", "existing"]), default="new"),
        click.option("--name", default="", help="Preferred worktree name"),
        click.option("--branch", default="", help="Branch to create (new mode)"),
        click.option("--existing", default="", help="Branch to attach (existing mode)"),
        click.option("--start-ref", default="HEAD", help="Start point for a new branch"),
        click.option("--start-command", default="", help="Command to run after creation"),
        click.option("--upstream/--no-upstream", default=None, help="Configure upstream tracking"),
        click.option("--remote-name", default="", help="Remote to ensure"),
        click.option("--remote-url", default="", help="URL of the remote to ensure"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@worktree.command("list")
@click.option("--json", "as_json", is_flag=True, help="Print JSON")
@click.pass_context
def worktree_list(ctx, as_json):
    """List worktrees of the repository."""
    service = ctx.obj["service"]
    worktrees = _run(ctx, service.list_worktrees(ctx.obj["directory"]))

    if as_json:
        click.echo(json.dumps([info.model_dump() for info in worktrees], indent=2))
        return

    table = Table()
    table.add_column("Name")
    table.add_column("Branch")
    table.add_column("Head")
    table.add_column("Path")
    for info in worktrees:
        table.add_row(info.name, info.branch, info.head[:8], info.path)
    console.print(table)


@worktree.command("validate")
@_worktree_options
@click.pass_context
def worktree_validate(ctx, mode, name, branch, existing, start_ref, start_command, upstream, remote_name, remote_url):
    """Check whether a worktree could be created, without creating it."""
    service = ctx.obj["service"]
    request = _build_request(mode, name, branch, existing, start_ref, start_command, upstream, remote_name, remote_url)
    result = _run(ctx, service.validate_worktree_create(ctx.obj["directory"], request))

    if result.ok:
        local = result.resolved.local_branch if result.resolved else None
        console.print(f"[green]✓ OK[/] ({request.mode.value}{f', branch {local}' if local else ''})")
        return

    for error in result.errors:
        console.print(f"[red]{error.code.value}[/]: {error.message}")
    ctx.exit(1)


@worktree.command("create")
@_worktree_options
@click.option("--upstream-defaults", is_flag=True, help="Track the root branch's remote")
@click.pass_context
def worktree_create(
    ctx, mode, name, branch, existing, start_ref, start_command, upstream, remote_name, remote_url, upstream_defaults
):
    """Create a worktree."""
    service = ctx.obj["service"]
    directory = ctx.obj["directory"]
    request = _build_request(mode, name, branch, existing, start_ref, start_command, upstream, remote_name, remote_url)

    async def create():
        resolved = await service.with_upstream_defaults(directory, request) if upstream_defaults else request
        created = await service.create_worktree(directory, resolved)
        if service.start_scripts.pending:
            console.print("[dim]Running start scripts...[/]")
        await service.start_scripts.drain()
        return created

    info = _run(ctx, create())
    console.print(f"[green]✓ Created {info.name}[/] on [bold]{info.branch}[/]")
    console.print(f"  {info.path}")


@worktree.command("remove")
@click.argument("path")
@click.option("--delete-branch", is_flag=True, help="Also delete the local branch")
@click.option("--delete-remote-branch", is_flag=True, help="Also delete the branch on the remote")
@click.option("--remote", default="origin", help="Remote for --delete-remote-branch")
@click.pass_context
def worktree_remove(ctx, path, delete_branch, delete_remote_branch, remote):
    """Remove a worktree by path."""
    service = ctx.obj["service"]
    directory = ctx.obj["directory"]
    target = str(Path(path).expanduser().resolve())

    async def remove():
        if not delete_remote_branch:
            return await service.remove_worktree(
                directory, RemoveWorktreeRequest(directory=target, delete_local_branch=delete_branch)
            )
        for entry in await service.list_project_worktrees(directory):
            if Path(entry.path).resolve() == Path(target):
                return await service.remove_project_worktree(
                    directory,
                    entry,
                    delete_local_branch=delete_branch,
                    delete_remote_branch=True,
                    remote_name=remote,
                )
        return await service.remove_worktree(
            directory, RemoveWorktreeRequest(directory=target, delete_local_branch=delete_branch)
        )

    _run(ctx, remove())
    console.print(f"[green]✓ Removed {target}[/]")


# ============== Identity ==============

@cli.group()
def identity():
    """Show or set the commit identity."""


@identity.command("get")
@click.pass_context
def identity_get(ctx):
    service = ctx.obj["service"]
    result = _run(ctx, service.get_identity(ctx.obj["directory"]))
    console.print(f"Name:  {result.user_name or '-'}")
    console.print(f"Email: {result.user_email or '-'}")
    console.print(f"SSH:   {result.ssh_command or '-'}")


@identity.command("set")
@click.option("--name", "user_name", required=True)
@click.option("--email", "user_email", required=True)
@click.option("--ssh-key", default=None, help="Private key for core.sshCommand")
@click.pass_context
def identity_set(ctx, user_name, user_email, ssh_key):
    service = ctx.obj["service"]
    result = _run(ctx, service.set_identity(ctx.obj["directory"], user_name, user_email, ssh_key))
    if result.success:
        console.print("[green]✓ Identity updated[/]")
    else:
        console.print("[red]Failed to update identity[/]")
        ctx.exit(1)


if __name__ == "__main__":
    cli()
