"""
Binance USDT-M Futures adapter: klines as a bar source, market orders as the
execution port. Retries on rate limits.
"""

from __future__ import annotations
import asyncio
import logging
import math
import time
from typing import Optional

import pandas as pd
from binance.client import Client
from binance.exceptions import BinanceAPIException, BinanceRequestException
from requests.exceptions import RequestException

from quantflow.core.types import Bar, Order
from quantflow.data.bars import BarSeries
from quantflow.data.sources import BarSourcePort, LiveBarSource
from quantflow.execution.base import ExecutionReport, OrderExecutionPort
from quantflow.utils.timeframes import timeframe_seconds

logger = logging.getLogger("quantflow.execution.binance")


def retry_on_rate_limit(max_retries: int = 3, base_delay: float = 1.0):
    """Decorator: retry on 429 or 418 (rate limit)."""
    def decorator(f):
        def wrapped(*args, **kwargs):
            for attempt in range(max_retries):
                try:
                    return f(*args, **kwargs)
                except BinanceAPIException as e:
                    if e.status_code in (429, 418) and attempt < max_retries - 1:
                        delay = base_delay * (2 ** attempt)
                        logger.warning("Rate limited, retry in %.1fs (attempt %d)", delay, attempt + 1)
                        time.sleep(delay)
                    else:
                        raise
        return wrapped
    return decorator


def round_quantity(qty: float, min_qty: float, step_size: float) -> float:
    """Round down to the lot step; 0 if that falls below min_qty."""
    if qty <= 0:
        return 0.0
    rounded = math.floor(qty / step_size) * step_size
    return round(rounded, 8) if rounded >= min_qty else 0.0


def lot_filters(symbol_info: Optional[dict]) -> tuple:
    """(min_qty, step_size) from LOT_SIZE, with defaults when info is missing."""
    min_qty, step = 0.001, 0.0001
    for f in (symbol_info or {}).get("filters", []):
        if f.get("filterType") == "LOT_SIZE":
            min_qty = float(f.get("minQty", min_qty))
            step = float(f.get("stepSize", step))
    return min_qty, step


def klines_to_frame(raw: list) -> pd.DataFrame:
    df = pd.DataFrame(raw, columns=[
        "open_time", "open", "high", "low", "close", "volume",
        "close_time", "quote_av", "num_trades", "tb_base_av", "tb_quote_av", "ignore",
    ])
    df[["open", "high", "low", "close", "volume"]] = df[["open", "high", "low", "close", "volume"]].astype(float)
    df["time"] = (df["open_time"].astype("int64") // 1000).astype("int64")
    df["close_time"] = df["close_time"].astype("int64")
    return df[["time", "open", "high", "low", "close", "volume", "close_time"]]


class BinanceFuturesClient(BarSourcePort, OrderExecutionPort):
    """Binance USDT-M Futures client (testnet and live)."""

    def __init__(
        self,
        api_key: str = "",
        api_secret: str = "",
        testnet: bool = True,
        poll_seconds: float = 5.0,
        max_poll_errors: int = 3,
        client: Optional[Client] = None,
    ):
        # testnet=True routes futures calls to testnet.binancefuture.com
        self._client = client or Client(api_key or None, api_secret or None, testnet=testnet)
        if testnet:
            logger.info("Binance Futures: using TESTNET")
        else:
            logger.info("Binance Futures: using LIVE")
        self.poll_seconds = poll_seconds
        self.max_poll_errors = max_poll_errors
        self._symbol_info: dict = {}
        self._live: Optional[LiveBarSource] = None
        self._task: Optional[asyncio.Task] = None

    # ----- market data -----

    @retry_on_rate_limit(max_retries=3, base_delay=1.0)
    def get_klines(self, symbol: str, interval: str, limit: int = 500, start_ms: Optional[int] = None,
                   end_ms: Optional[int] = None) -> pd.DataFrame:
        kwargs = {"symbol": symbol, "interval": interval, "limit": limit}
        if start_ms is not None:
            kwargs["startTime"] = start_ms
        if end_ms is not None:
            kwargs["endTime"] = end_ms
        return klines_to_frame(self._client.futures_klines(**kwargs))

    def open(self, symbol, timeframe, start=None, end=None, live=False):
        if not live:
            df = self.get_klines(
                symbol, timeframe, limit=1500,
                start_ms=start * 1000 if start is not None else None,
                end_ms=end * 1000 if end is not None else None,
            )
            # Drop the still-forming candle
            df = df[df["close_time"] < int(time.time() * 1000)]
            return BarSeries.from_frame(df, symbol=symbol, timeframe=timeframe)
        self._live = LiveBarSource(symbol, timeframe)
        self._task = asyncio.get_running_loop().create_task(self._poll(self._live, symbol, timeframe))
        return self._live

    async def _poll(self, source: LiveBarSource, symbol: str, timeframe: str) -> None:
        """Publish each newly closed kline; interrupt the source after repeated failures."""
        try:
            await self._poll_klines(source, symbol, timeframe)
        except Exception as e:
            logger.exception("Kline poll for %s crashed", symbol)
            source.interrupt(f"Binance feed lost: {e}")

    async def _poll_klines(self, source: LiveBarSource, symbol: str, timeframe: str) -> None:
        last_time: Optional[int] = None
        errors = 0
        step = timeframe_seconds(timeframe)
        while not source.closed:
            try:
                df = await asyncio.to_thread(self.get_klines, symbol, timeframe, 3)
                errors = 0
            except (BinanceAPIException, BinanceRequestException, RequestException) as e:
                errors += 1
                logger.warning("Kline poll failed (%d/%d): %s", errors, self.max_poll_errors, e)
                if errors >= self.max_poll_errors:
                    source.interrupt(f"Binance feed lost: {e}")
                    return
                await asyncio.sleep(self.poll_seconds)
                continue
            now_ms = int(time.time() * 1000)
            for row in df[df["close_time"] < now_ms].to_dict("records"):
                if last_time is not None and row["time"] <= last_time:
                    continue
                if last_time is not None and row["time"] - last_time > step:
                    logger.info("Gap in %s feed: %ds", symbol, row["time"] - last_time)
                source.publish(Bar(
                    time=int(row["time"]), open=row["open"], high=row["high"],
                    low=row["low"], close=row["close"], volume=row["volume"],
                ))
                last_time = int(row["time"])
            await asyncio.sleep(self.poll_seconds)

    def close(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
        if self._live is not None:
            self._live.close()
            self._live = None

    # ----- orders -----

    @retry_on_rate_limit(max_retries=2)
    def get_symbol_info(self, symbol: str) -> Optional[dict]:
        if symbol not in self._symbol_info:
            info = self._client.futures_exchange_info()
            for s in info.get("symbols", []):
                self._symbol_info[s.get("symbol")] = s
        return self._symbol_info.get(symbol)

    @retry_on_rate_limit(max_retries=2)
    def place(self, order: Order) -> ExecutionReport:
        min_qty, step = lot_filters(self.get_symbol_info(order.symbol))
        qty = round_quantity(order.qty, min_qty, step)
        if qty <= 0:
            return ExecutionReport(success=False, order_id=order.id, message=f"qty {order.qty} below lot size")
        try:
            res = self._client.futures_create_order(
                symbol=order.symbol, side=order.side.value, type="MARKET",
                quantity=str(qty), newClientOrderId=order.id,
            )
        except BinanceAPIException as e:
            logger.error("Binance order error for %s: %s", order.id, e)
            return ExecutionReport(success=False, order_id=order.id, message=str(e))
        avg = res.get("avgPrice") or res.get("price")
        return ExecutionReport(
            success=True,
            order_id=order.id,
            exchange_order_id=str(res.get("orderId")),
            avg_price=float(avg) if avg else None,
            quantity=qty,
        )

    def cancel_all(self, symbol: Optional[str] = None) -> None:
        if symbol is None:
            raise ValueError("Binance cancel_all needs a symbol")
        self._client.futures_cancel_all_open_orders(symbol=symbol)
        logger.info("Cancelled all open orders for %s", symbol)
