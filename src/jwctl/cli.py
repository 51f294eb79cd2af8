import json
import logging
import sys
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import anyio
import click

from jwctl import tokens
from jwctl.approvals import ApprovalWorkflow, InteractiveSelector, WorkflowOutcome
from jwctl.approvals.terminal import TerminalEvents, TerminalView, open_browser
from jwctl.config import APP_NAME, GatewayConfig, config_path
from jwctl.errors import GatewayError
from jwctl.gateway import GatewayClient, parse_permissions


T = TypeVar("T")

LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class CliState:
    config: GatewayConfig
    token_path: str
    config_path: str


def _setup_logging(verbose: bool, timestamps: bool) -> None:
    fmt = f"%(asctime)s {LOG_FORMAT}" if timestamps else LOG_FORMAT
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(fmt))

    logger = logging.getLogger("jwctl")
    logger.handlers = [handler]
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.debug("Debug logging enabled")


@click.group()
@click.option(
    "--url",
    "-u",
    type=str,
    help="URL of the JumpWire gateway  [env: JW_URL]",
)
@click.option(
    "--token",
    "-t",
    type=str,
    help="Token used to authenticate to the gateway API  [env: JW_TOKEN]",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.option("--timestamps", is_flag=True, help="Enable timestamps in log lines")
@click.option(
    "--config",
    "config_file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to the YAML configuration file",
)
@click.option(
    "--token-path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path of the stored authentication token",
)
@click.pass_context
def cli(
    ctx: click.Context,
    url: str | None,
    token: str | None,
    verbose: bool,
    timestamps: bool,
    config_file: str | None,
    token_path: str | None,
) -> None:
    """Command line client for the JumpWire gateway."""
    _setup_logging(verbose, timestamps)

    token_file = token_path or tokens.token_path(APP_NAME)
    config_file = config_file or config_path(APP_NAME)
    try:
        config = GatewayConfig.load(
            path=config_file,
            overrides={"url": url, "token": token},
            stored_token=tokens.load_token(token_file),
        )
    except (OSError, ValueError) as e:
        raise click.ClickException(f"Invalid configuration: {e}") from e

    ctx.obj = CliState(config=config, token_path=token_file, config_path=config_file)


def _validated(config: GatewayConfig) -> GatewayConfig:
    errors = config.validate()
    if errors:
        raise click.UsageError("; ".join(errors))
    return config


def _gateway_call(
    config: GatewayConfig, call: Callable[[GatewayClient], Awaitable[T]]
) -> T:
    """Run a single gateway call, turning failures into CLI errors."""

    async def runner() -> T:
        async with GatewayClient(
            config.url, config.token, timeout=config.request_timeout
        ) as client:
            return await call(client)

    try:
        return anyio.run(runner, backend="asyncio")
    except GatewayError as e:
        raise click.ClickException(e.message) from e


def _echo_json(value: Any) -> None:
    click.echo(json.dumps(value, indent=2, sort_keys=True))


async def run_approval(config: GatewayConfig, approval_token: str) -> WorkflowOutcome:
    """Run the interactive approval workflow against the configured gateway."""
    async with GatewayClient(
        config.url, config.token, timeout=config.request_timeout
    ) as gateway:
        async with TerminalEvents() as events:
            selector = InteractiveSelector(events, TerminalView(), browser=open_browser)
            workflow = ApprovalWorkflow(
                gateway,
                selector,
                timeout=config.timeout,
                stage_timeout=config.stage_timeout,
            )
            return await workflow.run(approval_token)


def report(outcome: WorkflowOutcome) -> None:
    click.echo(outcome.message, err=not outcome.ok)
    if outcome.detail:
        logging.getLogger("jwctl").debug("Outcome detail: %s", outcome.detail)


@cli.command("approve")
@click.argument("approval_token")
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Seconds allowed for the whole approval, including the decision  [env: JW_TIMEOUT]",
)
@click.pass_context
def approve(ctx: click.Context, approval_token: str, timeout: float | None) -> None:
    """Approve a pending database connection or SSO login.

    APPROVAL_TOKEN is the token printed by the gateway for the pending request.
    """
    state: CliState = ctx.obj
    config = _validated(state.config.merge({"timeout": timeout}))

    outcome = anyio.run(run_approval, config, approval_token, backend="asyncio")
    report(outcome)
    ctx.exit(outcome.exit_code)


@cli.group("config")
def config_group() -> None:
    """Check the current CLI configuration."""


@config_group.command("get")
@click.pass_obj
def config_get(state: CliState) -> None:
    """Display the current configuration."""
    _echo_json(
        {
            **state.config.redacted(),
            "config_path": state.config_path,
            "token_path": state.token_path,
        }
    )


@cli.command("status")
@click.pass_obj
def status(state: CliState) -> None:
    """Check the status of the gateway."""
    config = _validated(state.config)
    _echo_json(_gateway_call(config, lambda client: client.status()))


@cli.command("ping")
@click.pass_obj
def ping(state: CliState) -> None:
    """Run a simple ping against the gateway."""
    config = _validated(state.config)
    click.echo(_gateway_call(config, lambda client: client.ping()))


@cli.group("token")
def token_group() -> None:
    """Interact with bearer tokens used for authentication."""


@token_group.command("set")
@click.argument("token", required=False)
@click.pass_obj
def token_set(state: CliState, token: str | None) -> None:
    """Store the authentication token for future calls."""
    if not token:
        token = click.prompt("API token", hide_input=True)
    tokens.save_token(state.token_path, token)
    click.echo(f"Authentication token stored at: {state.token_path}")


@token_group.command("whoami")
@click.pass_obj
def token_whoami(state: CliState) -> None:
    """Check permissions on the configured token."""
    config = _validated(state.config)
    _echo_json(_gateway_call(config, lambda client: client.whoami()))


@token_group.command("generate")
@click.argument("permissions", nargs=-1, required=True)
@click.pass_obj
def token_generate(state: CliState, permissions: tuple[str, ...]) -> None:
    """Generate a new authentication token.

    Permissions are METHOD:ACTION pairs, for example `get:status`.
    """
    try:
        parse_permissions(permissions)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="PERMISSIONS") from e

    config = _validated(state.config)
    _echo_json(
        _gateway_call(config, lambda client: client.generate_token(permissions))
    )


def main():
    """Main entry point for the application."""
    return cli()


if __name__ == "__main__":
    sys.exit(main())
