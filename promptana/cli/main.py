"""Promptana operator CLI: run the server and inspect its configuration."""

from __future__ import annotations

import json

import click

from promptana.config import get_settings

SECRET_FIELDS = {"supabase_key", "openrouter_api_key"}


def _mask(value: str) -> str:
    if not value:
        return ""
    if len(value) <= 8:
        return "****"
    return f"{value[:4]}...{value[-4:]}"


@click.group()
def cli() -> None:
    """Promptana: prompt management service."""


@cli.command()
@click.option("--host", default="0.0.0.0", show_default=True)
@click.option("--port", type=int, default=None, help="Defaults to the PORT setting")
@click.option("--reload", is_flag=True, default=False, help="Reload on code changes")
def serve(host: str, port: int | None, reload: bool) -> None:
    """Run the API server with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "promptana.main:app",
        host=host,
        port=port or settings.port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


@cli.command("config")
@click.option("--format", "output_format", type=click.Choice(["table", "json"]), default="table")
def show_config(output_format: str) -> None:
    """Print the effective settings with secrets masked."""
    values = get_settings().model_dump()
    for name in SECRET_FIELDS:
        values[name] = _mask(values[name])

    if output_format == "json":
        click.echo(json.dumps(values, indent=2, default=str))
        return
    width = max(len(name) for name in values)
    for name, value in values.items():
        click.echo(f"{name.ljust(width)}  {value}")


@cli.command()
def models() -> None:
    """List the models allowed for runs and for improvements."""
    settings = get_settings()
    click.echo("Run models:")
    for model in settings.run_models:
        click.echo(f"  {model}")
    click.echo("Improve models:")
    for model in settings.improve_models:
        click.echo(f"  {model}")


if __name__ == "__main__":
    cli()
