import functools
import json
import signal
from pathlib import Path
from typing import Any, Dict, List, Optional

import click
import gevent
import structlog
from eth_account.signers.local import LocalAccount
from gevent.event import Event

from mint_runner import __version__
from mint_runner.client import ChainClient, account_from_key
from mint_runner.dispatch import DispatchCoordinator
from mint_runner.engine import RetryEngine
from mint_runner.exceptions import (
    ChainIdMismatch,
    ConfigurationError,
    MintRunnerError,
    SubmissionFailed,
)
from mint_runner.types import Confirmed, DryRun, SubmissionOutcome, TerminalFailure
from mint_runner.utils.configuration import ConfigMapping, MintConfig, load_raw_settings
from mint_runner.utils.configuration.settings import SETTING_KEYS
from mint_runner.utils.contracts import ContractBinding
from mint_runner.utils.logs import configure_logging
from mint_runner.utils.version import get_system_info

log = structlog.get_logger(__name__)

#: Settings exposed as on/off flags instead of value options.
FLAG_SETTINGS = ("DRY_RUN", "DEBUG")


def settings_options(func):
    """Decorator adding one option per setting.

    Options left unset arrive as ``None`` so they don't shadow values from the
    environment or the config file.
    """
    for key in reversed(SETTING_KEYS):
        option_name = "--" + key.lower().replace("_", "-")
        if key in FLAG_SETTINGS:
            func = click.option(
                option_name, key.lower(), is_flag=True, flag_value="1", default=None
            )(func)
        else:
            func = click.option(
                option_name, key.lower(), default=None, envvar=key, show_envvar=True
            )(func)

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        return func(*args, **kwargs)

    return wrapper


def preflight(client: ChainClient, config: MintConfig) -> int:
    """Check the node is reachable and on the expected chain.

    :raises ChainIdMismatch: if `config.chain_id` is set and differs from the node's.
    """
    chain_id = client.chain_id()
    log.info("Network", chain_id=chain_id)
    log.debug("RPC endpoint", rpc_url=config.rpc_url)
    if config.chain_id is not None and config.chain_id != chain_id:
        raise ChainIdMismatch(f"CHAIN_ID mismatch: expected {config.chain_id}, got {chain_id}")
    return chain_id


def install_signal_handlers(cancel_event: Event) -> None:
    def handler():
        log.warning("Received termination signal, cancelling pending submissions")
        cancel_event.set()

    for signum in (signal.SIGINT, signal.SIGTERM):
        gevent.signal_handler(signum, handler)


def run_single(engine: RetryEngine, account: LocalAccount, binding: ContractBinding):
    """Run the single-signer flow.

    :raises SubmissionFailed: (or a subclass) if the submission ends in a terminal failure.
    """
    outcome = engine.run(account, binding)
    if isinstance(outcome, TerminalFailure):
        raise SubmissionFailed.from_outcome(outcome)
    return outcome


def run_multi(
    engine: RetryEngine, accounts: List[LocalAccount], binding: ContractBinding, config: MintConfig
) -> List[SubmissionOutcome]:
    """Run the multi-signer flow. Failures of single signers are logged, never raised."""
    log.info("Multi mode", signers=len(accounts), parallel=config.parallel)
    coordinator = DispatchCoordinator(
        engine, binding, parallel=config.parallel, tx_delay_ms=config.tx_delay_ms
    )
    outcomes = coordinator.dispatch(accounts)
    log.info(
        "Multi mode finished",
        confirmed=sum(isinstance(outcome, Confirmed) for outcome in outcomes),
        dry_run=sum(isinstance(outcome, DryRun) for outcome in outcomes),
        failed=sum(isinstance(outcome, TerminalFailure) for outcome in outcomes),
    )
    return outcomes


@click.group(invoke_without_command=True, context_settings={"max_content_width": 120})
@click.pass_context
def main(ctx):
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@main.command(name="run")
@click.option(
    "--config-file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="A YAML file holding settings. Environment variables and options take precedence.",
)
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Additionally write the log as JSON lines to this file.",
)
@settings_options
@click.pass_context
def run(ctx, config_file, log_file, **settings):
    """Submit the configured contract call.

    click entrypoint, this dispatches to `run_`.
    """
    option_values = {key.upper(): value for key, value in settings.items() if value is not None}
    try:
        raw_settings = load_raw_settings(config_file=config_file)
        raw_settings.update(option_values)
        debug = ConfigMapping(raw_settings).get_bool("DEBUG")
    except ConfigurationError as e:
        click.secho(f"Configuration error: {e}", fg="red", err=True)
        ctx.exit(e.exit_code)

    configure_logging(debug=debug, log_file=Path(log_file) if log_file else None)
    ctx.exit(run_(raw_settings))


def run_(raw_settings: Dict[str, Any], cancel_event: Optional[Event] = None) -> int:
    """Validate the settings and run the configured mode.

    Shared code for the `run` command and embedding.

    :returns: the process exit code, ``0`` on success, ``1`` on any unrecovered failure.
    """
    log.info("Mint runner version", version=__version__)
    try:
        config = MintConfig.from_mapping(raw_settings)
        # Fail on malformed keys before touching the network.
        accounts = [account_from_key(private_key) for private_key in config.private_keys]

        client = ChainClient.from_url(config.rpc_url)
        binding = ContractBinding.from_config(config, web3=client.web3)
        preflight(client, config)

        if cancel_event is None:
            cancel_event = Event()
            install_signal_handlers(cancel_event)
        engine = RetryEngine(client, config, cancel_event=cancel_event)

        if config.dry_run:
            log.info("DRY_RUN enabled, no transaction will be broadcast")

        if config.is_multi:
            run_multi(engine, accounts, binding, config)
        else:
            run_single(engine, accounts[0], binding)
    except (ConfigurationError, MintRunnerError) as ex:
        log.error("Fatal", error=str(ex), error_type=type(ex).__name__)
        return ex.exit_code
    except Exception:
        log.exception("Fatal")
        return 1

    log.info("Run finished", result="success")
    return 0


@main.command(name="version", help="Show versions of mint runner and its environment.")
@click.option("--short", is_flag=True, help="Only display mint runner version")
def version(short):
    if short:
        click.secho(message=__version__)
    else:
        info = get_system_info()
        click.secho(message=json.dumps(info, indent=2))
