"""
Load configuration from config.yaml and .env. API keys only from env.
"""

from __future__ import annotations
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv


def _env_path(project_root: Optional[Path] = None) -> Path:
    root = project_root or Path(__file__).resolve().parents[2]
    return root / ".env"


def load_dotenv_if_exists(project_root: Optional[Path] = None) -> None:
    """Load .env from project root if present."""
    path = _env_path(project_root)
    if path.exists():
        load_dotenv(path)


def load_config(config_path: Optional[Path] = None, project_root: Optional[Path] = None) -> "Config":
    """Load config.yaml and overlay with env. Returns Config."""
    load_dotenv_if_exists(project_root)
    root = project_root or Path(__file__).resolve().parents[2]
    path = config_path or root / "config.yaml"
    data: dict[str, Any] = {}
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

    def env(key: str, default: str = "") -> str:
        return os.getenv(key, str(default)).strip()

    def env_bool(key: str, default: bool = False) -> bool:
        return os.getenv(key, str(default)).lower() in ("true", "1", "yes")

    def env_int(key: str, default: int = 0) -> int:
        try:
            return int(os.getenv(key, str(default)))
        except ValueError:
            return default

    def env_float(key: str, default: float = 0.0) -> float:
        try:
            return float(os.getenv(key, str(default)))
        except ValueError:
            return default

    api = data.get("api", {})
    market = data.get("market", {})
    strategy = data.get("strategy", {})
    execution = data.get("execution", {})
    session = data.get("session", {})
    backtest = data.get("backtest", {})
    logging_cfg = data.get("logging", {})
    telegram = data.get("telegram", {})

    use_testnet = env_bool("USE_TESTNET", api.get("use_testnet", True))
    # Dedicated testnet/mainnet keys can live side by side in .env
    if use_testnet:
        api_key = env("BINANCE_TESTNET_API_KEY") or env("BINANCE_API_KEY")
        api_secret = env("BINANCE_TESTNET_API_SECRET") or env("BINANCE_API_SECRET")
    else:
        api_key = env("BINANCE_MAINNET_API_KEY") or env("BINANCE_API_KEY")
        api_secret = env("BINANCE_MAINNET_API_SECRET") or env("BINANCE_API_SECRET")

    return Config(
        api_key=api_key,
        api_secret=api_secret,
        use_testnet=use_testnet,
        symbol=env("SYMBOL", market.get("symbol", "BTCUSDT")).upper(),
        timeframe=env("TIMEFRAME", market.get("timeframe", "1h")),
        strategy_name=env("STRATEGY", strategy.get("name", "sma_cross")),
        strategy_params=dict(strategy.get("params", {}) or {}),
        fill_policy=env("FILL_POLICY", execution.get("fill_policy", "next_open")),
        fee_bps=env_float("FEE_BPS", execution.get("fee_bps", 0.0)),
        slippage_bps=env_float("SLIPPAGE_BPS", execution.get("slippage_bps", 0.0)),
        session_mode=env("SESSION_MODE", session.get("mode", "paper")).lower(),
        log_capacity=env_int("LOG_CAPACITY", session.get("log_capacity", 100)),
        bar_interval_seconds=env_float("BAR_INTERVAL_SECONDS", session.get("bar_interval_seconds", 1.0)),
        starting_equity=env_float("STARTING_EQUITY", backtest.get("starting_equity", 10000.0)),
        synthetic_bars=env_int("SYNTHETIC_BARS", backtest.get("synthetic_bars", 500)),
        synthetic_seed=env_int("SYNTHETIC_SEED", backtest.get("synthetic_seed", 42)),
        start_price=float(backtest.get("start_price", 50000.0)),
        results_dir=Path(backtest.get("results_dir", "results")),
        log_level=env("LOG_LEVEL", logging_cfg.get("level", "INFO")),
        log_dir=Path(logging_cfg.get("log_dir", "logs")),
        log_file=logging_cfg.get("log_file", "quantflow.log"),
        telegram_bot_token=env("TELEGRAM_BOT_TOKEN", telegram.get("bot_token", "")),
        telegram_chat_id=env("TELEGRAM_CHAT_ID", telegram.get("chat_id", "")),
    )


class Config:
    """Unified configuration. Treated as read-only after load."""

    __slots__ = (
        "api_key", "api_secret", "use_testnet", "symbol", "timeframe",
        "strategy_name", "strategy_params",
        "fill_policy", "fee_bps", "slippage_bps",
        "session_mode", "log_capacity", "bar_interval_seconds",
        "starting_equity", "synthetic_bars", "synthetic_seed", "start_price", "results_dir",
        "log_level", "log_dir", "log_file",
        "telegram_bot_token", "telegram_chat_id",
    )

    def __init__(
        self,
        api_key: str = "",
        api_secret: str = "",
        use_testnet: bool = True,
        symbol: str = "BTCUSDT",
        timeframe: str = "1h",
        strategy_name: str = "sma_cross",
        strategy_params: Optional[dict] = None,
        fill_policy: str = "next_open",
        fee_bps: float = 0.0,
        slippage_bps: float = 0.0,
        session_mode: str = "paper",
        log_capacity: int = 100,
        bar_interval_seconds: float = 1.0,
        starting_equity: float = 10000.0,
        synthetic_bars: int = 500,
        synthetic_seed: int = 42,
        start_price: float = 50000.0,
        results_dir: Path = None,
        log_level: str = "INFO",
        log_dir: Path = None,
        log_file: str = "quantflow.log",
        telegram_bot_token: str = "",
        telegram_chat_id: str = "",
    ):
        self.api_key = api_key
        self.api_secret = api_secret
        self.use_testnet = use_testnet
        self.symbol = symbol
        self.timeframe = timeframe
        self.strategy_name = strategy_name
        self.strategy_params = strategy_params or {}
        self.fill_policy = fill_policy
        self.fee_bps = fee_bps
        self.slippage_bps = slippage_bps
        self.session_mode = session_mode
        self.log_capacity = log_capacity
        self.bar_interval_seconds = bar_interval_seconds
        self.starting_equity = starting_equity
        self.synthetic_bars = synthetic_bars
        self.synthetic_seed = synthetic_seed
        self.start_price = start_price
        self.results_dir = Path(results_dir) if results_dir else Path("results")
        self.log_level = log_level
        self.log_dir = Path(log_dir) if log_dir else Path("logs")
        self.log_file = log_file
        self.telegram_bot_token = telegram_bot_token
        self.telegram_chat_id = telegram_chat_id

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key) and bool(self.api_secret)
