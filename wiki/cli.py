"""Command line for running and administering the wiki."""

import asyncio

import typer
from sqlalchemy.exc import IntegrityError

from wiki.core.config import settings
from wiki.core.database import AsyncSessionLocal, engine
from wiki.core.errors import StorageError
from wiki.core.schemas import UserRole
from wiki.core.security import CredentialStore

app = typer.Typer(
    name="wiki",
    help="A small wiki with a web UI and a JSON API",
    no_args_is_help=True,
)


@app.command("migrate")
def migrate():
    """Apply pending database migrations."""
    from wiki.main import run_migrations

    run_migrations()
    typer.echo("Migrations applied")


@app.command("create-user")
def create_user(
    username: str = typer.Argument(..., help="Login name"),
    password: str = typer.Argument(..., help="Plain password, stored hashed"),
    role: UserRole = typer.Option(UserRole.READER, help="Role deciding capabilities"),
):
    """Add a user to the credential store."""

    async def _create():
        store = CredentialStore(AsyncSessionLocal)
        try:
            return await store.create_user(username, password, role)
        finally:
            await engine.dispose()

    try:
        user = asyncio.run(_create())
    except StorageError as error:
        if isinstance(error.cause, IntegrityError):
            typer.echo(f"User {username} already exists")
        else:
            typer.echo(error.message)
        raise typer.Exit(1)
    typer.echo(f"Created user {user.username} ({user.role})")


@app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address"),
    port: int = typer.Option(8080, help="Bind port"),
):
    """Run the HTTP server."""
    import uvicorn

    uvicorn.run("wiki.main:app", host=host, port=port, log_level=settings.LOG_LEVEL.lower())


if __name__ == "__main__":
    app()
