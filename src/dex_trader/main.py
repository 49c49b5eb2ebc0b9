"""CLI entry point."""

import signal
import sys
from contextlib import ExitStack
from types import FrameType

import click
from pydantic import ValidationError

from dex_trader import __version__
from dex_trader.config import Settings, get_settings
from dex_trader.data.dexscreener import DexScreenerClient
from dex_trader.exec.swap import SwapRouterExecutor, WalletError, build_executor
from dex_trader.journal.store import PositionSnapshotFile, TradeLog
from dex_trader.manager import PositionManager
from dex_trader.portfolio import PositionStore
from dex_trader.scheduler import ScanScheduler
from dex_trader.utils.logging import get_logger, setup_logging


def build_scheduler(settings: Settings, resources: ExitStack) -> ScanScheduler:
    """Wire the store, collaborators and manager into a scheduler.

    HTTP clients are registered on ``resources`` and closed with it.

    Raises:
        WalletError: live mode without a usable wallet.
    """
    logger = get_logger("dex_trader.main")
    store = PositionStore(PositionSnapshotFile(settings.positions_file))
    loaded = store.load()
    logger.info("positions_loaded", count=loaded, path=str(settings.positions_file))

    executor = build_executor(settings)
    if isinstance(executor, SwapRouterExecutor):
        resources.callback(executor.close)
        try:
            logger.info("wallet_summary", **executor.wallet_summary())
        except Exception as exc:  # noqa: BLE001 - balance check is informational.
            logger.warning("wallet_summary_failed", error=str(exc))

    feed = DexScreenerClient(settings)
    resources.callback(feed.close)
    manager = PositionManager(
        settings,
        store,
        executor,
        TradeLog(settings.trades_file),
        feed,
    )
    return ScanScheduler(settings, feed, manager, store)


@click.command()
@click.option("--dry-run", is_flag=True, default=False, help="Simulate every execution")
@click.option("--once", is_flag=True, default=False, help="Run a single tick and exit")
@click.version_option(__version__, "--version", "-v", prog_name="dex-trader")
def cli(dry_run: bool, once: bool) -> None:
    """Scan DEX markets, open momentum positions and manage their exits.

    Stop with Ctrl+C; the current tick finishes first.
    """
    try:
        settings = get_settings()
    except ValidationError as exc:
        click.echo(f"Invalid configuration: {exc}", err=True)
        sys.exit(1)
    if dry_run:
        settings = settings.model_copy(update={"dry_run": True})

    setup_logging(settings)
    logger = get_logger("dex_trader.main")
    settings.ensure_directories()
    logger.info(
        "starting",
        dry_run=settings.dry_run,
        chain_id=settings.chain_id,
        position_size=settings.position_size,
        max_positions=settings.max_positions,
        stop_loss_pct=settings.stop_loss,
        scan_interval_ms=settings.scan_interval,
        blacklist=settings.blacklist,
    )

    if not settings.dry_run:
        missing = settings.validate_for_live()
        if missing:
            logger.error(
                "missing_required_config",
                missing_keys=missing,
                hint="Provide a wallet file or set DRY_RUN=true",
            )
            sys.exit(1)

    with ExitStack() as resources:
        try:
            scheduler = build_scheduler(settings, resources)
        except WalletError as exc:
            logger.error("wallet_unavailable", error=str(exc))
            sys.exit(1)

        if once:
            result = scheduler.run_tick()
            logger.info(
                "run_completed",
                status=result.status,
                opened=result.opened,
                closed=result.closed,
                warnings=result.warnings,
                elapsed_ms=round(result.elapsed_ms, 2),
            )
            return

        def _handle_stop(signum: int, frame: FrameType | None) -> None:
            logger.warning("shutdown_requested", signal=signal.Signals(signum).name)
            scheduler.stop()

        signal.signal(signal.SIGINT, _handle_stop)
        signal.signal(signal.SIGTERM, _handle_stop)

        scheduler.run_forever()
        logger.info("stopped", iterations=scheduler.iterations)
    sys.exit(0)


if __name__ == "__main__":
    cli()
