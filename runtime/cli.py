"""CLI interface for the sandboxed interpreter."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer

from runtime.config import RuntimeConfig, load_config
from runtime.failure_taxonomy import FailureAnalyzer
from runtime.observation import build_observation
from sandbox.errors import InterpreterError
from sandbox.session import InterpreterSession
from tools.base import ToolValidationError
from tools.validation import validate_tool_source

app = typer.Typer(help="Sandboxed Python interpreter CLI")


def _resolve_config(
    config_path: Optional[str],
    authorize: list[str],
    timeout: Optional[float],
) -> RuntimeConfig:
    config = load_config(config_path) if config_path else RuntimeConfig()
    overrides: dict[str, object] = {}
    if authorize:
        overrides["additional_authorized_imports"] = [
            *config.additional_authorized_imports,
            *authorize,
        ]
    if timeout is not None:
        overrides["timeout_seconds"] = timeout
    if not overrides:
        return config
    # Re-validate so command-line overrides obey the same field constraints.
    return RuntimeConfig.from_dict({**config.to_dict(), **overrides})


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Run model-style code under the sandbox's capability restrictions."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )


@app.command()
def run(
    code_file: str = typer.Argument(..., help="Python file to execute in the sandbox"),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to runtime YAML config"),
    authorize: list[str] = typer.Option([], "--authorize", "-a", help="Additional module to authorize"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Timeout in seconds"),
) -> None:
    """Execute a code file through a fresh interpreter session."""
    path = Path(code_file)
    if not path.exists():
        typer.secho(f"❌ Code file not found: {code_file}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    try:
        config = _resolve_config(config_path, authorize, timeout)
    except (FileNotFoundError, ValueError) as e:
        typer.secho(f"❌ Invalid config: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    session = InterpreterSession.from_config(config)
    code = path.read_text(encoding="utf-8")

    try:
        result, logs = session.execute(code)
    except InterpreterError as e:
        failure_type = FailureAnalyzer().classify_error(e.message)
        if e.logs:
            typer.echo(f"Execution logs:\n{e.logs}")
        typer.secho(f"❌ [{failure_type.value}] {e.message}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    typer.echo(build_observation(result, logs, config.max_length_truncate_content))


@app.command()
def validate_tool(
    source_file: str = typer.Argument(..., help="Python file defining the tool class"),
    check_imports: bool = typer.Option(True, "--check-imports/--no-check-imports", help="Check imports against the allow-list"),
    authorize: list[str] = typer.Option([], "--authorize", "-a", help="Additional module to authorize"),
) -> None:
    """Statically validate a tool class definition."""
    path = Path(source_file)
    if not path.exists():
        typer.secho(f"❌ Source file not found: {source_file}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    try:
        validate_tool_source(
            path.read_text(encoding="utf-8"),
            check_imports=check_imports,
            authorized_imports=authorize,
        )
    except ToolValidationError as e:
        typer.secho(f"❌ {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    typer.secho("✅ Tool definition is valid", fg=typer.colors.GREEN)


@app.command()
def show_imports(
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to runtime YAML config"),
    authorize: list[str] = typer.Option([], "--authorize", "-a", help="Additional module to authorize"),
) -> None:
    """List the modules sandboxed code may import."""
    try:
        config = _resolve_config(config_path, authorize, None)
    except (FileNotFoundError, ValueError) as e:
        typer.secho(f"❌ Invalid config: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    session = InterpreterSession.from_config(config)
    typer.secho(f"\n📦 {len(session.authorized_imports)} authorized module(s):\n", fg=typer.colors.BLUE)
    for module in session.authorized_imports:
        typer.echo(f"  {module}")


if __name__ == "__main__":
    app()
