import argparse
import asyncio
import logging
import signal
from datetime import datetime
from pathlib import Path

import uvloop

asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())

from bundling.jito import BundleSubmitter
from bundling.orchestrator import Orchestrator
from bundling.report import BatchReport
from config_loader import BundlerConfig, load_bundler_config, load_wallets, print_config_summary
from core.client import SolanaClient
from core.errors import BundlerError
from core.wallet import Wallet
from utils.logger import setup_file_logging


def setup_logging(run_name: str, operation: str):
    """Set up logging to file for a specific run."""
    log_dir = Path("logs")
    log_dir.mkdir(exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_filename = log_dir / f"{run_name}_{timestamp}-{operation}.log"

    setup_file_logging(str(log_filename))


def _optional_wallet(key: str | None) -> Wallet | None:
    return Wallet(key) if key else None


async def run_operation(
    orchestrator: Orchestrator, cfg: BundlerConfig, wallets: list[Wallet]
) -> BatchReport:
    """Dispatch the configured operation to the orchestrator."""
    dev = _optional_wallet(cfg.dev_key)
    funder = _optional_wallet(cfg.funder_key)

    if cfg.operation == "bundle_buy":
        return await orchestrator.bundle_buy(wallets, cfg.mint, cfg.buy_amount, funder=funder)

    if cfg.operation == "dump":
        aggregator = _optional_wallet(cfg.aggregator_key) or dev
        return await orchestrator.dump(
            wallets, cfg.mint, cfg.dump_percentage, aggregator=aggregator, funder=funder
        )

    if cfg.operation == "create_and_bundle":
        if dev is None:
            raise BundlerError("create_and_bundle requires wallets.dev_key")
        return await orchestrator.create_and_bundle(
            dev, cfg.metadata, wallets, cfg.buy_amount, dev_buy_amount=cfg.dev_buy_amount
        )

    if cfg.operation == "maker":
        if funder is None:
            raise BundlerError("maker requires wallets.funder_key")
        return await orchestrator.maker(funder, wallets, cfg.mint, cfg.amount_per_maker)

    if cfg.operation == "staggered_buy":
        return await orchestrator.staggered_buy(
            wallets,
            cfg.buy_amount,
            mint=cfg.mint,
            dev=dev,
            metadata=cfg.metadata,
            dev_buy_amount=cfg.dev_buy_amount,
            min_delay=cfg.min_delay,
            max_delay=cfg.max_delay,
        )

    if cfg.operation == "bump":
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        loop.add_signal_handler(signal.SIGINT, stop_event.set)
        loop.add_signal_handler(signal.SIGTERM, stop_event.set)
        try:
            return await orchestrator.bump_loop(
                wallets[0],
                cfg.mint,
                cfg.buy_amount,
                stop_event,
                max_rounds=cfg.bump_rounds,
                interval=cfg.bump_interval,
            )
        finally:
            loop.remove_signal_handler(signal.SIGINT)
            loop.remove_signal_handler(signal.SIGTERM)

    raise BundlerError(f"Unknown operation {cfg.operation}")


async def start_run(config_path: str) -> BatchReport | None:
    """Run one operation from the configuration at the specified path."""
    try:
        cfg = load_bundler_config(config_path)
        wallets = load_wallets(cfg.wallets_file)
    except BundlerError as e:
        logging.exception(f"Invalid configuration {config_path}: {e}")
        return None

    setup_logging(cfg.name, cfg.operation)
    print_config_summary(cfg)
    logging.info(f"Loaded {len(wallets)} wallets from {cfg.wallets_file}")
    if not wallets:
        logging.error("No wallets to run with")
        return None

    client = SolanaClient(cfg.rpc)
    submitter = BundleSubmitter(
        cfg.block_engines, mode=cfg.jito_mode, uuid=cfg.jito_uuid, timeout=cfg.jito_timeout
    )
    orchestrator = Orchestrator(
        client,
        submitter,
        policy=cfg.policy,
        platform=cfg.platform,
        fees=cfg.fees,
        tip_lamports=cfg.tip_lamports,
        fee_recipient=cfg.fee_recipient,
        flat_fee_lamports=cfg.flat_fee_lamports,
        network_margin_lamports=cfg.network_margin_lamports,
        compute_unit_limit=cfg.compute_unit_limit,
        compute_unit_price=cfg.compute_unit_price,
        confirmation_attempts=cfg.confirmation_attempts,
        confirmation_interval=cfg.confirmation_interval,
    )

    try:
        report = await run_operation(orchestrator, cfg, wallets)
    except BundlerError as e:
        logging.exception(f"Operation {cfg.operation} failed: {e}")
        return None
    finally:
        await submitter.close()
        await client.close()

    print(report.summary())
    for chunk in report.chunks:
        if chunk.bundle and chunk.bundle.bundle_id:
            for endpoint in chunk.bundle.accepted:
                logging.info(f"Bundle {endpoint.bundle_id}: {endpoint.explorer_url}")
    return report


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    for noisy in ("httpx", "httpcore", "solana.rpc"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    parser = argparse.ArgumentParser(description="Run a pump.fun bundle operation")
    parser.add_argument(
        "config", nargs="?", default="bots/bundle-example.yaml", help="Run configuration"
    )
    args = parser.parse_args()

    report = asyncio.run(start_run(args.config))
    if report is None or report.aborted:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
