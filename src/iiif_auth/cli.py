"""
iiif-auth CLI

Commands:
- info: Show the auth services a resource declares
- authenticate: Obtain and store a session for a resource
- probe: Check whether the stored session grants access
- logout: Call the logout service and forget the session
- get-protected: Fetch a protected resource with the stored session
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, NoReturn

import typer

from iiif_auth.client import AuthClient
from iiif_auth.errors import AuthError
from iiif_auth.flow import AuthOptions, Credentials
from iiif_auth.services import format_protected_resource
from iiif_auth.session import JsonFileSessionStore
from iiif_auth.settings import AuthSettings, PortRange

app = typer.Typer(add_completion=False, help="IIIF Authentication API tooling")

DEFAULT_SESSION_FILE = Path(".iiif-auth/sessions.json")


class JsonFormatter(logging.Formatter):
    """Simple JSON formatter for structured logs."""
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "msg": record.getMessage(),
            "logger": record.name,
        }
        # Include any custom attributes passed via `extra=`.
        reserved = {
            "name", "msg", "args", "levelname", "levelno", "pathname", "filename", "module",
            "exc_info", "exc_text", "stack_info", "lineno", "funcName", "created", "msecs",
            "relativeCreated", "thread", "threadName", "processName", "process", "taskName",
        }
        for k, v in record.__dict__.items():
            if k in reserved or k.startswith("_"):
                continue
            try:
                json.dumps(v)
                payload[k] = v
            except TypeError:
                payload[k] = repr(v)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def setup_logging(level: str) -> logging.Logger:
    logger = logging.getLogger("iiif_auth")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    logger.handlers[:] = [handler]
    logger.propagate = False
    return logger


@dataclass
class CliState:
    settings: AuthSettings
    session_file: Path

    def client(self) -> AuthClient:
        return AuthClient(store=JsonFileSessionStore(self.session_file), settings=self.settings)


def _fail(error: AuthError) -> NoReturn:
    typer.echo(f"❌ {error.message}", err=True)
    if error.hints:
        typer.echo("\nAlternatives:", err=True)
        for i, hint in enumerate(error.hints, start=1):
            typer.echo(f"  {i}. {hint}", err=True)
    raise typer.Exit(code=1)


def _echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, ensure_ascii=False))


@app.callback()
def main_callback(
    ctx: typer.Context,
    session_file: Path = typer.Option(
        DEFAULT_SESSION_FILE, "--session-file", help="JSON file where sessions are kept between runs"
    ),
    log_level: str = typer.Option(
        "WARNING", "--log-level", help="Logging verbosity (DEBUG, INFO, WARNING, ERROR)"
    ),
    port_start: int | None = typer.Option(None, "--port-start", help="First callback port to try"),
    port_end: int | None = typer.Option(None, "--port-end", help="Last callback port to try"),
    timeout: float | None = typer.Option(
        None, "--timeout", help="Browser flow deadline in seconds"
    ),
) -> None:
    """Discover IIIF auth services, authenticate, and fetch protected resources."""
    setup_logging(log_level)
    settings = AuthSettings()
    if port_start is not None or port_end is not None:
        try:
            port_range = PortRange(
                port_start if port_start is not None else settings.port_range.start,
                port_end if port_end is not None else settings.port_range.end,
            )
        except ValueError as e:
            raise typer.BadParameter(str(e)) from e
        settings = settings.with_overrides(port_range=port_range)
    settings = settings.with_overrides(flow_deadline=timeout)
    ctx.obj = CliState(settings=settings, session_file=session_file.expanduser())


@app.command("info")
def info_cmd(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="Resource URL (manifest, collection, info.json)"),
    structured: bool = typer.Option(False, "--structured", help="Print JSON instead of markdown"),
) -> None:
    """Show the authentication services a IIIF resource declares."""
    try:
        with ctx.obj.client() as auth:
            report = auth.describe(url, structured=structured)
    except AuthError as e:
        _fail(e)
    if structured:
        _echo_json(report)
    else:
        typer.echo(report)


@app.command("authenticate")
def authenticate_cmd(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="Protected resource URL"),
    username: str | None = typer.Option(None, "--username", help="Username for direct login"),
    password: str | None = typer.Option(None, "--password", help="Password for direct login"),
    token: str | None = typer.Option(None, "--token", help="Use a token obtained elsewhere"),
    session_id: str | None = typer.Option(None, "--session-id", help="Use a session id obtained elsewhere"),
    interactive: bool = typer.Option(
        False, "--interactive", help="Always log in through the browser"
    ),
    structured: bool = typer.Option(False, "--structured", help="Print the session summary as JSON"),
) -> None:
    """
    Authenticate against a protected IIIF resource and store the session.

    Example:
        iiif-auth authenticate https://example.org/manifest --username alice --password secret
    """
    credentials = Credentials(username, password) if username and password else None
    options = AuthOptions(token=token, session_id=session_id, interactive=interactive)
    try:
        with ctx.obj.client() as auth:
            session = auth.authenticate(url, credentials, options)
    except AuthError as e:
        _fail(e)

    summary = session.summary()
    if structured:
        _echo_json(summary)
        return
    typer.echo("✅ Authenticated")
    typer.echo(f"  Resource: {summary['resourceUrl']}")
    typer.echo(f"  Auth type: {summary['authType']}")
    typer.echo(f"  Expires: {summary['expiresAt'] or 'unknown'}")
    typer.echo(f"  Token: {'yes' if summary['hasToken'] else 'no'}")
    typer.echo(f"  Cookie: {'yes' if summary['hasCookie'] else 'no'}")


@app.command("probe")
def probe_cmd(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="Protected resource URL"),
) -> None:
    """Check access to a resource with the stored session (exit code 2 when denied)."""
    with ctx.obj.client() as auth:
        granted = auth.probe_access(url)
    if granted:
        typer.echo(f"✅ Access granted: {url}")
        return
    typer.echo(f"❌ Access denied: {url}")
    raise typer.Exit(code=2)


@app.command("logout")
def logout_cmd(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="Protected resource URL"),
) -> None:
    """Log out of a resource and delete its stored session."""
    with ctx.obj.client() as auth:
        auth.logout(url)
    typer.echo(f"✅ Logged out: {url}")


@app.command("get-protected")
def get_protected_cmd(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="Protected resource URL"),
    structured: bool = typer.Option(False, "--structured", help="Print the raw JSON only"),
) -> None:
    """Fetch a protected resource using the stored session."""
    try:
        with ctx.obj.client() as auth:
            data = auth.get_protected_resource(url)
    except AuthError as e:
        _fail(e)
    if structured:
        _echo_json(data)
    else:
        typer.echo(format_protected_resource(url, data))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
