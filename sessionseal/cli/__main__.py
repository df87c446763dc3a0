"""SessionSeal CLI - Main Entry Point.

The `sessionseal` command manages keys and tokens and runs the demo server.

Commands:
    keygen  - Generate a random signing key
    sign    - Sign a session id into a token
    verify  - Verify a token and print its session id
    serve   - Run the demo application with uvicorn
"""

import base64
import logging
import secrets
import sys
from typing import Optional

import click

from . import __version__, __cli_name__
from .output import error, info, kv, success, warning
from sessionseal.config import ConfigLoader, build_engine, decode_key
from sessionseal.sessions.faults import ConfigurationError, TokenRejectedError
from sessionseal.sessions.signer import HMACSigner


logger = logging.getLogger("sessionseal.cli")

KEY_ENVVAR = "SESSIONSEAL_KEY"


def _signer(key: str) -> HMACSigner:
    try:
        return HMACSigner(decode_key(key))
    except ConfigurationError as e:
        raise click.BadParameter(e.reason, param_hint="--key")


@click.group()
@click.version_option(version=__version__, prog_name=__cli_name__)
@click.option('--verbose', '-v', is_flag=True, help='Verbose output')
@click.pass_context
def cli(ctx, verbose: bool):
    """Signed, store-backed user sessions.

    \b
    Quick start:
      sessionseal keygen
      sessionseal serve --dev --memory
    """
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ============================================================================
# Commands
# ============================================================================

@cli.command('keygen')
@click.option('--length', type=click.IntRange(min=16), default=64, show_default=True,
              help='Key length in bytes')
def keygen(length: int):
    """
    Print a random signing key.

    The output carries a ``base64:`` prefix and can be used directly as
    ``sessions.key`` or ``--key``.

    Examples:
      sessionseal keygen
      sessionseal keygen --length=32
    """
    key = base64.urlsafe_b64encode(secrets.token_bytes(length)).decode("ascii")
    click.echo(f"base64:{key}")


@cli.command('sign')
@click.argument('session_id')
@click.option('--key', required=True, envvar=KEY_ENVVAR, help='Signing key (base64: prefix supported)')
def sign(session_id: str, key: str):
    """
    Sign SESSION_ID and print the token.

    Examples:
      sessionseal sign 9b2c...-...-... --key=base64:...
    """
    signer = _signer(key)
    if len(session_id.encode("utf-8")) != signer.id_width:
        raise click.BadParameter(f"session id must be {signer.id_width} bytes", param_hint="SESSION_ID")
    click.echo(signer.sign(session_id))


@cli.command('verify')
@click.argument('token')
@click.option('--key', required=True, envvar=KEY_ENVVAR, help='Signing key (base64: prefix supported)')
def verify(token: str, key: str):
    """
    Verify TOKEN and print its session id.

    Exits with status 1 when the token is rejected.

    Examples:
      sessionseal verify <token> --key=base64:...
    """
    try:
        session_id = _signer(key).verify(token)
    except TokenRejectedError as e:
        error(f"rejected: {e.code}")
        sys.exit(1)
    click.echo(session_id)


@cli.command('serve')
@click.option('--host', type=str, default='127.0.0.1', show_default=True, help='Server host')
@click.option('--port', type=int, default=8000, show_default=True, help='Server port')
@click.option('--config', 'config_path', type=click.Path(exists=True, dir_okay=False),
              help='YAML or JSON config file')
@click.option('--env-file', type=click.Path(dir_okay=False), help='.env file')
@click.option('--dev', is_flag=True, help='Allow cookies over plain HTTP')
@click.option('--memory', is_flag=True, help='Use the in-memory store instead of Redis')
@click.pass_context
def serve(ctx, host: str, port: int, config_path: Optional[str], env_file: Optional[str],
          dev: bool, memory: bool):
    """
    Run the demo application.

    Examples:
      sessionseal serve --config=sessionseal.yaml
      sessionseal serve --dev --memory --port=3000
    """
    import uvicorn

    from sessionseal.demo import create_app

    overrides: dict = {"sessions": {}}
    if dev:
        warning("Secure cookie flag disabled (--dev); do not use in production")
        overrides["sessions"]["transport"] = {"secure": False}
    if memory:
        overrides["sessions"]["store"] = {"backend": "memory"}

    try:
        loader = ConfigLoader.load(
            paths=[config_path] if config_path else None,
            env_file=env_file,
            overrides=overrides,
        )
        engine = build_engine(loader.get_session_config())
    except ConfigurationError as e:
        logger.debug(f"Engine construction failed: {e!r}")
        error(f"Configuration error: {e.reason}")
        sys.exit(2)

    info(f"Serving on http://{host}:{port}")
    kv("store", engine.store.name)
    kv("cookie", engine.transport.options.cookie_name)
    kv("expiration", engine.expiration)

    try:
        uvicorn.run(
            create_app(engine),
            host=host,
            port=port,
            log_level="debug" if ctx.obj['verbose'] else "info",
        )
    except KeyboardInterrupt:
        success("Server stopped")


def main():
    """Entry point for `sessionseal` command."""
    cli(obj={})


if __name__ == '__main__':
    main()
