"""
Forward HTTP (FHttp) Client CLI.

Establishes a WebSocket with an FHttp broker and forwards the requests it
receives to a consumer.

Usage:
    fhttp --help
    fhttp --broker https://fhttp.dev --consumer http://127.0.0.1 --port 8080
    fhttp --debug
"""

import logging
import sys

import click
import uvloop

from .client import EXIT_FAILURE, EXIT_OK, run_client
from .config import Settings, get_settings
from .exceptions import FHttpError
from .logging import get_logger, setup_logging
from .reporter import Reporter

logger = get_logger(__name__)


def build_settings(**overrides) -> Settings:
    """Environment settings with the options given on the command line applied on top."""
    settings = get_settings()
    given = {key: value for key, value in overrides.items() if value is not None}
    if not given:
        return settings
    return Settings.model_validate({**settings.model_dump(), **given})


@click.command(
    name="fhttp",
    help="Establishes a Websocket with an FHttp Broker and listens for messages "
    "from the broker that can be forwarded to a consumer.",
)
@click.option(
    "--broker",
    default=None,
    help="URL of the message broker the client connects to. Must be a valid HTTP(S) URI.  [default: https://fhttp.dev]",
)
@click.option(
    "--consumer",
    default=None,
    help="URL of the message consumer payloads are forwarded to.  [default: http://127.0.0.1]",
)
@click.option("--port", type=click.IntRange(0, 65535), default=None, help="Consumer port, when the consumer URL has none.")
@click.option("--debug", is_flag=True, default=False, help="Enable debug logs.")
def main(broker: str | None, consumer: str | None, port: int | None, debug: bool) -> None:
    """Receive FHttp broker payloads."""
    settings = build_settings(broker=broker, consumer=consumer, port=port, debug=debug or None)

    setup_logging(logging.DEBUG if settings.debug else settings.log_level.upper(), settings.log_dir)
    reporter = Reporter(body_preview_length=settings.body_preview_length)

    try:
        code = uvloop.run(run_client(settings, reporter))
    except FHttpError as exc:
        logger.error(exc.message, extra={"code": exc.code})
        click.echo(f"Error: {exc}", err=True)
        sys.exit(EXIT_FAILURE)

    if code == EXIT_OK:
        click.echo("Client Shutdown Successfully!")
    else:
        click.echo("Goodbye!", err=True)
    sys.exit(code)
