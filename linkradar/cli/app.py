"""Typer application entry point for the linkradar CLI."""

import typer

from linkradar.cli.commands import add as add_command
from linkradar.cli.commands import archive as archive_command
from linkradar.cli.commands import init_db as init_db_command
from linkradar.cli.commands import status as status_command
from linkradar.cli.commands import worker as worker_command

app = typer.Typer(no_args_is_help=True, name="linkradar")

app.command(name="init-db", help="Create the database tables")(
    init_db_command.init_db_command
)
app.command(name="add", help="Bookmark a URL and queue its content archive")(
    add_command.add_command
)
app.command(name="archive", help="Archive one link's content in the foreground")(
    archive_command.archive_command
)
app.command(name="worker", help="Run archive jobs from the queue")(
    worker_command.worker_command
)
app.command(name="status", help="Show a link's archive state and history")(
    status_command.status_command
)


if __name__ == "__main__":
    app()
