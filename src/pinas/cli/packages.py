import asyncio

import click

from pinas.cli.utils import MutuallyExclusiveOption, load_manifest_file
from pinas.config import config
from pinas.packages.errors import PackageError


def _service(ctx):
    if "service" not in ctx.obj:
        from pinas.packages.service import PackageService

        ctx.obj["service"] = PackageService()
    return ctx.obj["service"]


def _resolver():
    from pinas.packages.resolver import ManifestResolver

    return ManifestResolver(config.catalog_url, timeout_seconds=config.http_timeout_seconds)


@click.group()
@click.pass_context
def packages(ctx):
    """Package installation commands"""
    ctx.ensure_object(dict)


@packages.command(name="list")
@click.pass_context
def list_packages(ctx):
    """List installed packages."""
    for package in _service(ctx).list_installed():
        line = f"{package.id}\t{package.version}\t{package.status}"
        if package.error_message:
            line += f"\t{package.error_message}"
        click.echo(line)


@packages.command()
def catalog():
    """List packages available in the catalog."""
    data = asyncio.run(_resolver().get_catalog())
    for app in data.get("apps", []):
        click.echo(f"{app.get('id')}\t{app.get('version', '')}\t{app.get('name', '')}")


@packages.command()
@click.argument("package_id", required=False)
@click.option(
    "--manifest-file",
    "-f",
    cls=MutuallyExclusiveOption,
    mutually_exclusive=["url"],
    type=click.Path(exists=True, dir_okay=False),
    help="Install from a local JSON or YAML manifest.",
)
@click.option(
    "--url",
    cls=MutuallyExclusiveOption,
    mutually_exclusive=["manifest_file"],
    help="Install from a manifest URL.",
)
@click.pass_context
def install(ctx, package_id, manifest_file, url):
    """Install a package by catalog id, manifest file or manifest URL."""
    if not (package_id or manifest_file or url):
        raise click.UsageError("Give a PACKAGE_ID, --manifest-file or --url.")

    manifest_data = load_manifest_file(manifest_file) if manifest_file else None
    service = _service(ctx)
    service.init_directories()
    try:
        manifest, manifest_url = asyncio.run(
            _resolver().resolve(manifest=manifest_data, manifest_url=url, package_id=package_id)
        )
        task_id = asyncio.run(service.install(manifest, manifest_url))
    except PackageError as e:
        raise click.ClickException(str(e))

    click.echo(f"Package '{manifest.id}' installed (task {task_id}).")


@packages.command()
@click.argument("package_id")
@click.pass_context
def uninstall(ctx, package_id):
    """Uninstall a package."""
    try:
        asyncio.run(_service(ctx).uninstall(package_id))
    except PackageError as e:
        raise click.ClickException(str(e))
    click.echo(f"Package '{package_id}' uninstalled.")


@packages.command()
@click.argument("task_id")
@click.pass_context
def task(ctx, task_id):
    """Show the progress of an install or uninstall task."""
    record = _service(ctx).get_task(task_id)
    if record is None:
        raise click.ClickException(f"Task '{task_id}' not found")

    click.echo(f"Package: {record.package_id}")
    click.echo(f"Type: {record.task_type}")
    click.echo(f"Status: {record.status}")
    click.echo(f"Progress: {record.progress}/{record.total_steps}")
    if record.current_step:
        click.echo(f"Current step: {record.current_step}")
    if record.error_message:
        click.echo(f"Error: {record.error_message}")
