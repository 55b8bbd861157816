"""CLI for BlockHaven Admin Gateway operators."""
import asyncio
import json
import sys

import click

from blockhaven.core.commands import COMMAND_SPECS, validate_command
from blockhaven.dependencies import get_command_executor, get_settings
from blockhaven.errors import AdminError


@click.group()
def cli():
    """BlockHaven Admin Gateway CLI."""
    pass


@cli.command("policies")
@click.option("--format", "fmt", type=click.Choice(["table", "json"]), default="table")
def list_policies(fmt: str):
    """Show the per-endpoint rate-limit table."""
    settings = get_settings()
    rows = {path: policy.model_dump() for path, policy in settings.RATE_LIMIT_POLICIES.items()}
    rows["(default)"] = settings.default_rate_policy.model_dump()

    if fmt == "json":
        click.echo(json.dumps(rows, indent=2))
        return

    click.echo(f"\n{'Endpoint':<32} {'Window (ms)':>12} {'Max':>6}")
    click.echo("-" * 52)
    for path, policy in rows.items():
        click.echo(f"{path:<32} {policy['window_ms']:>12} {policy['max_requests']:>6}")


@cli.command("commands")
def list_commands():
    """List the whitelisted RCON commands."""
    for spec in COMMAND_SPECS.values():
        usage = f"{spec.name} <{spec.example}>" if spec.accepts_argument else spec.name
        click.echo(usage)


@cli.command("validate")
@click.argument("command")
@click.argument("args", required=False)
def validate(command: str, args: str):
    """Check COMMAND [ARGS] against the whitelist without running it."""
    result = validate_command(command, args)
    if result.valid:
        click.echo("✓ Command is allowed")
    else:
        click.echo(f"Error: {result.error}", err=True)
        sys.exit(1)


@cli.command("rcon")
@click.argument("command")
@click.argument("args", required=False)
def rcon(command: str, args: str):
    """Run a whitelisted COMMAND [ARGS] on the configured instance."""
    executor = get_command_executor()
    try:
        output = asyncio.run(executor.execute(command, args))
    except AdminError as e:
        click.echo(f"Error ({e.code}): {e.message}", err=True)
        sys.exit(1)
    click.echo(output)


@cli.command("serve")
@click.option("--host", default="127.0.0.1")
@click.option("--port", default=8000, type=int)
def serve(host: str, port: int):
    """Run the HTTP API with uvicorn."""
    import uvicorn
    uvicorn.run("blockhaven.main:app", host=host, port=port)


if __name__ == "__main__":
    cli()
