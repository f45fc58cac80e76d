#!/usr/bin/env python3
"""Oracle Updater.

Observes a reference price on a trading venue and pushes it to an on-chain
oracle contract, republishing on deviation, on a freshness floor, and
disabling the oracle when updates stop.

Configuration is a TOML file read once at startup; recognised keys are
documented in ``oracle_updater/src/OracleConfig.py``.
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Callable

from .src.fetchers import get_available_fetchers, get_fetcher
from .src.ObservationSource import VenueObservationSource
from .src.OracleConfig import ConfigError, OracleConfig
from .src.OracleUpdater import OracleUpdater

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config") / "oracle.toml"

# Seconds to stay idle when no configuration file is found.
IDLE_WITHOUT_CONFIG = 5.0


def install_signal_handlers(stop: Callable[[], None]) -> None:
    """Route SIGINT/SIGTERM to ``stop`` on the running event loop.

    :param stop: Callback requesting shutdown.
    """
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop)
        except (NotImplementedError, RuntimeError):
            # Platforms without loop signal support fall back to KeyboardInterrupt
            pass


async def idle(seconds: float) -> None:
    """Wait ``seconds`` or until interrupted, doing nothing else."""
    stop_event = asyncio.Event()
    install_signal_handlers(stop_event.set)
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        pass


async def run_updater(updater: OracleUpdater) -> None:
    """Run the updater with signal-driven shutdown."""
    install_signal_handlers(updater.stop)
    await updater.run()


def log_config(config: OracleConfig) -> None:
    """Log the effective parameters."""
    logger.info("=" * 60)
    logger.info("Oracle Updater")
    logger.info("=" * 60)
    logger.info(f"Network:           {config.rpc_url or config.network}")
    logger.info(f"Oracle:            {config.oracle_address}")
    logger.info(f"Source:            {config.source} {config.pair}"
                + (" (inverted)" if config.invert else ""))
    logger.info(f"Fetch Interval:    {config.fetch_interval}s")
    logger.info(f"Update Threshold:  {config.update_threshold}%")
    logger.info(f"Update Interval:   {config.update_interval}s")
    logger.info(f"Confidence:        {config.confidence}")
    logger.info(
        f"Inactive Duration: {config.inactive_duration}s"
        if config.inactive_duration else "Inactive Duration: disabled"
    )
    logger.info(f"Min Threshold:     {config.min_threshold}")
    logger.info(f"Max Threshold:     {config.max_threshold}")
    logger.info(f"Negative Spread:   {'allowed' if config.allow_negative_spread else 'invalid'}")
    logger.info(
        f"Delivery:          timeout={config.tx_timeout}s, poll={config.poll_interval}s, "
        f"rebroadcast={config.rebroadcast_interval}s x{config.max_rebroadcasts}"
    )
    logger.info("=" * 60)


def main() -> None:
    """Main entry point for the Oracle Updater CLI."""
    parser = argparse.ArgumentParser(
        description="Oracle Updater: push venue prices to an on-chain oracle",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Available price sources:
  {', '.join(get_available_fetchers())}

Examples:
  # Use config/oracle.toml
  python -m oracle_updater.main

  # Use another config file
  python -m oracle_updater.main config/sol_usd.toml

Environment variables (override the config file):
  ORACLE_PRIVATE_KEY, RPC_URL, API_KEY_<SOURCE>
""",
    )

    parser.add_argument(
        "config",
        nargs="?",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to the TOML configuration file (default: {DEFAULT_CONFIG_PATH})",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    args = parser.parse_args()

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if not args.config.is_file():
        logger.error(f"No configuration file found at {args.config}")
        asyncio.run(idle(IDLE_WITHOUT_CONFIG))
        logger.info("Done - quitting")
        return

    try:
        config = OracleConfig.from_file(args.config)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    log_config(config)

    fetcher = get_fetcher(config.source, api_key=config.api_key, timeout=config.fetch_timeout)
    source = VenueObservationSource(fetcher, config.base, config.quote, invert=config.invert)
    updater = OracleUpdater(config, source)

    try:
        asyncio.run(run_updater(updater))
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
