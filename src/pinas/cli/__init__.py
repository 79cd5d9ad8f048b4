import logging

import click

from pinas.cli.packages import packages


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx, debug):
    """PiNAS CLI"""
    ctx.ensure_object(dict)
    logging.basicConfig(level=logging.DEBUG if debug else logging.INFO)


main.add_command(packages)


@main.group()
def db():
    """Database commands"""


@db.command(name="init")
def init_db():
    """Create the package tables."""
    from pinas.db.session import get_db_manager

    get_db_manager()
    click.echo("Database initialized.")


@db.command(name="reset")
@click.confirmation_option(prompt="This drops every package record. Continue?")
def reset_db():
    """Drop and recreate the package tables."""
    from pinas.db.session import get_db_manager

    get_db_manager().reset_db()
    click.echo("Database reset.")


@main.command()
@click.option('--host', default='127.0.0.1', help='The host to bind to.')
@click.option('--port', default=8000, help='The port to bind to.')
def server(host, port):
    """Run the FastAPI server."""
    import uvicorn

    from pinas.api.server import app
    uvicorn.run(app, host=host, port=port)
