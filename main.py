#!/usr/bin/env python3
"""
QuantFlow CLI: backtest | paper | live
Usage:
  python main.py backtest [--config config.yaml] [--data bars.csv] [--save]
  python main.py paper [--config config.yaml]
  python main.py live [--config config.yaml]
  python main.py session [--config config.yaml]   # session.mode from config
"""

from __future__ import annotations
import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Project root
ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from quantflow.backtesting.engine import run_backtest
from quantflow.core.config import Config, load_config
from quantflow.core.errors import CredentialError
from quantflow.core.logger import setup_logging
from quantflow.core.types import FillPolicy
from quantflow.data.bars import BarSeries
from quantflow.data.synthetic import SyntheticBarFeed
from quantflow.live.session import Credentials, LiveSessionController, SessionMode
from quantflow.persistence.store import FileResultStore
from quantflow.strategies.registry import build_strategy
from quantflow.utils.telegram import TelegramNotifier

logger = logging.getLogger("quantflow")


def _load_bars(config: Config, data_path: Path | None) -> BarSeries:
    if data_path is not None:
        logger.info("Loading bars from %s", data_path)
        return BarSeries.from_csv(data_path, symbol=config.symbol, timeframe=config.timeframe)
    if config.has_credentials:
        from quantflow.execution.binance_futures import BinanceFuturesClient
        client = BinanceFuturesClient(config.api_key, config.api_secret, testnet=config.use_testnet)
        return client.open(config.symbol, config.timeframe)
    logger.info("No data file or API keys: using %d synthetic bars (seed %d)", config.synthetic_bars, config.synthetic_seed)
    feed = SyntheticBarFeed(config.synthetic_bars, config.start_price, seed=config.synthetic_seed)
    return feed.open(config.symbol, config.timeframe)


def run_backtest_cmd(config_path: Path | None, data_path: Path | None, save: bool) -> int:
    """Run a backtest and print its metrics."""
    config = load_config(config_path, ROOT)
    setup_logging(config.log_level, config.log_dir, config.log_file)
    strategy = build_strategy(config.strategy_name, config.strategy_params)
    bars = _load_bars(config, data_path)
    store = FileResultStore(config.results_dir) if save else None
    result = run_backtest(
        strategy,
        bars,
        config.starting_equity,
        strategy_id=config.strategy_name,
        fill_policy=FillPolicy(config.fill_policy),
        fee_bps=config.fee_bps,
        slippage_bps=config.slippage_bps,
        persistence=store,
    )
    m = result.metrics
    print("\n--- Backtest Results ---")
    print(f"Status: {result.status.value}" + (f" ({result.error})" if result.error else ""))
    print(f"Bars: {result.bars_processed} | fill policy: {result.fill_policy.value}")
    print(f"Total trades: {m.total_trades} (wins: {m.winning_trades}, losses: {m.losing_trades})")
    print(f"Total return: {m.total_return:.2f}%")
    print(f"Sharpe ratio: {m.sharpe_ratio:.2f} (annualized, {m.periods_per_year:.0f} bars/year)")
    print(f"Sortino ratio: {m.sortino_ratio:.2f}")
    print(f"Max drawdown: {m.max_drawdown:.2f}%")
    print(f"Win rate: {m.win_rate:.1f}%")
    print(f"Profit factor: {m.profit_factor:.2f}")
    print(f"Expectancy: {m.expectancy:.2f} per trade")
    return 0 if result.status.value == "COMPLETED" else 1


async def _run_session(config: Config, mode: SessionMode) -> int:
    strategy = build_strategy(config.strategy_name, config.strategy_params)
    notifier = TelegramNotifier(config.telegram_bot_token, config.telegram_chat_id)
    if mode is SessionMode.LIVE:
        from quantflow.execution.binance_futures import BinanceFuturesClient
        port = BinanceFuturesClient(config.api_key, config.api_secret, testnet=config.use_testnet)

        def execution_factory(creds: Credentials):
            return BinanceFuturesClient(creds.api_key, creds.api_secret, testnet=config.use_testnet)
    else:
        port = SyntheticBarFeed(
            config.synthetic_bars, config.start_price,
            seed=config.synthetic_seed, interval_seconds=config.bar_interval_seconds,
        )
        execution_factory = None

    session = LiveSessionController(
        strategy,
        port,
        config.symbol,
        config.timeframe,
        starting_equity=config.starting_equity,
        execution_factory=execution_factory,
        fill_policy=FillPolicy(config.fill_policy),
        fee_bps=config.fee_bps,
        slippage_bps=config.slippage_bps,
        log_capacity=config.log_capacity,
        sinks=[notifier] if notifier.enabled else [],
    )
    try:
        await session.start(mode, Credentials(config.api_key, config.api_secret))
    except CredentialError:
        logger.error("Missing BINANCE_API_KEY or BINANCE_API_SECRET in .env")
        return 1
    try:
        await session.wait_closed()
    except asyncio.CancelledError:
        await session.stop()
        raise
    snap = session.snapshot()
    print(f"Session ended | equity {snap.equity:.2f} | open positions {len(snap.positions)}")
    return 0


def run_session_cmd(config_path: Path | None, mode: SessionMode | None) -> int:
    """Run a paper/live session until the feed ends or Ctrl+C."""
    config = load_config(config_path, ROOT)
    mode = mode or SessionMode(config.session_mode)
    setup_logging(config.log_level, config.log_dir, config.log_file)
    try:
        return asyncio.run(_run_session(config, mode))
    except KeyboardInterrupt:
        logger.info("Shutdown by user")
        return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="QuantFlow strategy engine CLI")
    parser.add_argument(
        "mode", choices=["backtest", "paper", "live", "session"],
        help="Run a backtest, or a trading session (session: mode from config)",
    )
    parser.add_argument("--config", type=Path, default=None, help="Path to config.yaml")
    parser.add_argument("--data", type=Path, default=None, help="OHLCV CSV for backtests")
    parser.add_argument("--save", action="store_true", help="Save the backtest result under results_dir")
    args = parser.parse_args()
    if args.mode == "backtest":
        return run_backtest_cmd(args.config, args.data, args.save)
    return run_session_cmd(args.config, None if args.mode == "session" else SessionMode(args.mode))


if __name__ == "__main__":
    sys.exit(main())
