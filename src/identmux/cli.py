"""identmux command-line interface."""

from __future__ import annotations

import os
import re
import sys
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version
from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from .compiler import ConfigCompiler, ConfigInjector
from .exceptions import ConfigError, IdentmuxError
from .merger import find_managed_block, read_user_text
from .models import (
    ApplyReport,
    Identity,
    IdentityModel,
    Locations,
    ValidationWarning,
    collapse_home,
    sanitize_label,
)
from .remotes import RemoteUpdater
from .store import IdentityStore

app = typer.Typer(
    name="identmux",
    help="identmux: map project directories to Git and SSH identities",
    add_completion=False,
)
console = Console()


def _get_version_string() -> str:
    """Get version string from package metadata or pyproject.toml."""
    try:
        return get_version("identmux")
    except PackageNotFoundError:
        pass

    # Development checkout without installed metadata
    pyproject_path = Path(__file__).parent.parent.parent / "pyproject.toml"
    if pyproject_path.exists():
        content = pyproject_path.read_text()
        match = re.search(r'version\s*=\s*["\']([^"\']+)["\']', content)
        if match:
            return f"{match.group(1)} (development)"

    return "unknown"


def version_callback(value: bool) -> None:
    """Callback for --version flag."""
    if value:
        console.print(f"identmux version {_get_version_string()}")
        raise typer.Exit


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    home: Path | None = typer.Option(
        None,
        "--home",
        envvar="IDENTMUX_HOME",
        help="Home directory whose SSH and Git config are managed",
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Config file (defaults to ~/.config/identmux/config.yaml)",
    ),
) -> None:
    """identmux: map project directories to Git and SSH identities."""
    ctx.obj = Locations.from_environment(home=home, config_path=config)
    if hasattr(os, "geteuid") and os.geteuid() == 0:
        console.print(
            "[yellow]Warning:[/yellow] Running as root. "
            "identmux is intended for regular user accounts.",
        )


def _print_warnings(warnings: list[ValidationWarning]) -> None:
    for warning in warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")


def _fail(error: Exception) -> typer.Exit:
    console.print(f"[red]Error:[/red] {error}")
    return typer.Exit(1)


def _load(locations: Locations) -> IdentityModel:
    result = IdentityStore(locations).load()
    _print_warnings(result.warnings)
    return result.model


def _print_summary(model: IdentityModel, injector: ConfigInjector) -> None:
    console.print(f"[bold]Default identity:[/bold] {model.default_label}\n")

    table = Table(title="identmux configuration")
    table.add_column("Identity", style="cyan")
    table.add_column("Name")
    table.add_column("Email")
    table.add_column("SSH key")
    table.add_column("Hosts")
    table.add_column("Paths")
    for identity in model.identities.values():
        label = identity.label
        if model.is_default(label):
            label += " (default)"
        table.add_row(
            label,
            identity.name or "<not set>",
            identity.email or "<not set>",
            identity.ssh_key or "<not set>",
            ", ".join(identity.hosts) or "<none>",
            ", ".join(identity.paths) or "<none>",
        )
    console.print(table)

    console.print("\n[bold]Files that will be modified:[/bold]")
    for path in injector.planned_files(model):
        console.print(f"  • {path}", markup=False)
    for _identity, key_path in injector.missing_keys(model):
        console.print(f"  • {key_path} [yellow](new key)[/yellow]")
    console.print()


def _print_apply_report(report: ApplyReport, dry_run: bool) -> None:
    for target, content in report.previews.items():
        console.print(f"\n[dim]--- {target} ---[/dim]")
        console.print(content, markup=False, highlight=False, soft_wrap=True)

    for key in report.keys:
        if not key.created:
            continue
        console.print(f"[green]✓[/green] Generated SSH key: {key.path}")
        if key.public_key:
            console.print("[bold]Public key[/bold] (add it to your Git host):")
            console.print(key.public_key, markup=False, highlight=False, soft_wrap=True)

    for path in report.written:
        console.print(f"[green]✓[/green] Updated {path}")

    _print_warnings(report.warnings)
    for target, error in report.errors.items():
        console.print(f"[red]Error:[/red] {target}: {error}")

    if dry_run:
        console.print("\nDry run complete. No files were modified.")


@app.command()
def apply(
    ctx: typer.Context,
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Show what would be written without modifying files",
    ),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Apply without asking for confirmation",
    ),
) -> None:
    """Generate missing keys and write SSH and Git configuration."""
    locations: Locations = ctx.obj
    try:
        model = _load(locations)
    except IdentmuxError as e:
        raise _fail(e) from e

    injector = ConfigInjector(locations, dry_run=dry_run)
    _print_summary(model, injector)

    if not (yes or dry_run) and not typer.confirm("Apply this configuration?"):
        console.print("Aborted.")
        raise typer.Exit(0)

    report = injector.apply(model)
    _print_apply_report(report, dry_run)

    if not report.ok:
        raise typer.Exit(1)
    if not dry_run:
        console.print("[green]✓[/green] identmux configuration applied successfully.")


@app.command()
def show(ctx: typer.Context) -> None:
    """Show the current identity configuration."""
    locations: Locations = ctx.obj
    try:
        model = _load(locations)
    except IdentmuxError as e:
        raise _fail(e) from e
    _print_summary(model, ConfigInjector(locations))


@app.command()
def export(ctx: typer.Context) -> None:
    """Print the config file to stdout."""
    try:
        text = IdentityStore(ctx.obj).export()
    except IdentmuxError as e:
        raise _fail(e) from e
    typer.echo(text, nl=False)


@app.command("update-remotes")
def update_remotes(
    ctx: typer.Context,
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="List the remote changes without applying them",
    ),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Apply without asking for confirmation",
    ),
) -> None:
    """Rewrite remotes of repositories under identity paths to SSH aliases."""
    locations: Locations = ctx.obj
    try:
        model = _load(locations)
        updater = RemoteUpdater(model, locations)
        changes = updater.plan()
    except IdentmuxError as e:
        raise _fail(e) from e

    _print_warnings(updater.warnings)
    if not changes:
        console.print("All remote URLs are already up to date. Nothing to change.")
        return

    for change in changes:
        console.print(f"[cyan]●[/cyan] {change.repo.name}  ({change.remote})")
        console.print(f"  [dim]old:[/dim] {change.old_url}", highlight=False)
        console.print(f"  [green]new:[/green] {change.new_url}", highlight=False)

    if dry_run:
        console.print(
            f"[dry-run] Would update {len(changes)} remote(s). No changes made.",
            markup=False,
        )
        return

    if not yes and not typer.confirm(f"Apply these {len(changes)} remote update(s)?"):
        console.print("Skipped remote updates.")
        return

    report = updater.apply(changes)
    for change in report.updated:
        console.print(
            f"[green]✓[/green] Updated {change.remote} in {change.repo.name}: {change.new_url}",
        )
    for failure in report.failures:
        console.print(f"[red]Error:[/red] {failure}")

    if report.failed_count:
        console.print(
            f"[yellow]Warning:[/yellow] {report.failed_count} remote(s) could not be updated.",
        )
    else:
        console.print("[green]✓[/green] All remote URLs updated successfully.")


@app.command()
def add(
    ctx: typer.Context,
    label: str = typer.Argument(..., help="Identity label (e.g. work)"),
    name: str = typer.Option("", "--name", help="Git user.name"),
    email: str = typer.Option("", "--email", help="Git user.email"),
    ssh_key: str | None = typer.Option(
        None,
        "--ssh-key",
        help="Private key path (defaults to ~/.ssh/id_ed25519_<label>)",
    ),
    hosts: list[str] = typer.Option(
        ["github.com"],
        "--host",
        help="SSH host served by this identity (can be repeated)",
    ),
    paths: list[str] | None = typer.Option(
        None,
        "--path",
        help="Project directory for this identity (defaults to ~/<label>)",
    ),
    make_default: bool = typer.Option(
        False,
        "--default",
        help="Make this the default identity",
    ),
) -> None:
    """Add an identity to the config file."""
    locations: Locations = ctx.obj
    store = IdentityStore(locations)
    try:
        model = store.load().model if store.exists() else IdentityModel()
        label = sanitize_label(label)
        if ssh_key is None:
            ssh_key = f"~/.ssh/id_ed25519_{label}"
        try:
            identity = Identity(
                label=label,
                name=name,
                email=email,
                ssh_key=collapse_home(ssh_key, locations.home),
                hosts=hosts,
                paths=[collapse_home(p, locations.home) for p in paths or [f"~/{label}"]],
            )
        except ValidationError as e:
            msg = f"Invalid identity '{label}': {e.errors()[0]['msg']}"
            raise ConfigError(msg) from e
        model.add_identity(identity)
        if make_default:
            model.set_default(label)
        store.save(model)
    except IdentmuxError as e:
        raise _fail(e) from e

    console.print(f"[green]✓[/green] Added identity '{label}' to {store.path}")
    console.print("Run 'identmux apply' to update SSH and Git configuration.")


@app.command()
def remove(
    ctx: typer.Context,
    label: str = typer.Argument(..., help="Identity label to remove"),
) -> None:
    """Remove an identity from the config file."""
    store = IdentityStore(ctx.obj)
    try:
        model = store.load().model
        model.remove_identity(label)
        if not model.identities:
            msg = "Cannot remove the last identity"
            raise ConfigError(msg)
        store.save(model)
    except IdentmuxError as e:
        raise _fail(e) from e
    console.print(f"[green]✓[/green] Removed identity '{label}'")


@app.command("set-default")
def set_default(
    ctx: typer.Context,
    label: str = typer.Argument(..., help="Identity label to make default"),
) -> None:
    """Change the default identity."""
    store = IdentityStore(ctx.obj)
    try:
        model = store.load().model
        model.set_default(label)
        store.save(model)
    except IdentmuxError as e:
        raise _fail(e) from e
    console.print(f"[green]✓[/green] Default identity is now '{label}'")


@app.command()
def doctor(ctx: typer.Context) -> None:
    """Check the config file and the files identmux manages."""
    locations: Locations = ctx.obj
    store = IdentityStore(locations)
    try:
        result = store.load()
        warnings = [*result.warnings, *store.verify()]
    except IdentmuxError as e:
        raise _fail(e) from e

    model = result.model
    compiler = ConfigCompiler(model, locations)
    warnings.extend(compiler.ssh_warnings())

    ssh_block = "missing"
    if locations.ssh_config.exists():
        ssh_text = read_user_text(locations.ssh_config)
        warnings.extend(compiler.detect_ssh_host_conflicts(ssh_text))
        if find_managed_block(ssh_text) is not None:
            ssh_block = "present"

    git_block = "missing"
    if locations.gitconfig.exists():
        if find_managed_block(read_user_text(locations.gitconfig)) is not None:
            git_block = "present"

    table = Table(title="identmux doctor")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Config file", str(store.path))
    table.add_row("Identities", ", ".join(model.labels))
    table.add_row("Default identity", model.default_label)
    table.add_row("SSH managed block", ssh_block)
    table.add_row("Git managed block", git_block)
    console.print(table)

    if warnings:
        _print_warnings(warnings)
    else:
        console.print("[green]✓[/green] No problems found")


@app.command()
def version() -> None:
    """Show identmux version information."""
    console.print(f"identmux version {_get_version_string()}")


def main() -> None:
    """Entry point for the CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
