"""Live/paper session controller: start/stop/kill, feed failures, snapshots, logs."""

import asyncio
import dataclasses
import logging
import threading

import pytest

from conftest import ManualBarPort, SCENARIO_OHLC, ScriptedStrategy, make_bars, wait_until
from quantflow.core.errors import CredentialError
from quantflow.core.types import LogLevel, OrderIntent, OrderSide
from quantflow.execution.base import OrderExecutionPort
from quantflow.live.session import Credentials, LiveSessionController, SessionMode


class BrokenVenue(OrderExecutionPort):
    def __init__(self):
        self.place_calls = 0
        self.cancel_calls = 0

    def place(self, order):
        self.place_calls += 1
        raise ConnectionError("venue unreachable")

    def cancel_all(self, symbol=None):
        self.cancel_calls += 1
        raise ConnectionError("venue unreachable")


def make_session(strategy=None, **kwargs):
    port = ManualBarPort()
    session = LiveSessionController(strategy or ScriptedStrategy(), port, "BTCUSDT", "1h", 10000.0, **kwargs)
    return session, port


async def feed(session, port, ohlc, start=None):
    bars = make_bars(ohlc) if start is None else make_bars(ohlc, start=start)
    target = session.snapshot().bars_processed + len(bars)
    for bar in bars:
        port.source.publish(bar)
    await wait_until(lambda: session.snapshot().bars_processed == target)
    return bars


def last_log(session):
    return session.snapshot().recent_logs[-1]


def test_live_mode_without_credentials_opens_nothing():
    async def scenario():
        session, port = make_session(execution_factory=lambda creds: BrokenVenue())
        with pytest.raises(CredentialError):
            await session.start(SessionMode.LIVE, Credentials("", "  "))
        assert port.opened == 0
        assert not session.is_running
        entry = last_log(session)
        assert entry.level is LogLevel.ERROR
        assert "API key" in entry.message

    asyncio.run(scenario())


def test_paper_session_processes_bars_and_stops():
    async def scenario():
        session, port = make_session(ScriptedStrategy({0: OrderIntent.buy(0.1)}))
        await session.start(SessionMode.PAPER)
        assert session.snapshot().is_running
        await feed(session, port, SCENARIO_OHLC[:3])

        snap = session.snapshot()
        [pos] = snap.positions
        assert pos.side is OrderSide.BUY and pos.entry_price == 103
        assert snap.equity == pytest.approx(9999.7)
        assert snap.cash == 10000.0

        await session.stop()
        snap = session.snapshot()
        assert not snap.is_running
        # stop keeps positions open
        assert len(snap.positions) == 1
        assert snap.recent_logs[-1].message == "Session stopped by user."
        assert snap.recent_logs[-1].level is LogLevel.WARNING
        assert port.closed == 1
        assert port.source.closed

    asyncio.run(scenario())


def test_start_while_running_is_ignored():
    async def scenario():
        session, port = make_session()
        await session.start(SessionMode.PAPER)
        await session.start(SessionMode.PAPER)
        assert port.opened == 1
        await session.stop()

    asyncio.run(scenario())


def test_restart_keeps_account_state():
    async def scenario():
        session, port = make_session(ScriptedStrategy({0: OrderIntent.buy(0.1)}))
        await session.start(SessionMode.PAPER)
        bars = await feed(session, port, SCENARIO_OHLC[:2])
        await session.stop()
        await session.start(SessionMode.PAPER)
        assert port.opened == 2
        assert len(session.snapshot().positions) == 1
        await feed(session, port, SCENARIO_OHLC[2:3], start=bars[-1].time + 3600)
        assert session.snapshot().is_running
        await session.stop()

    asyncio.run(scenario())


def test_kill_closes_positions_and_drops_pending_orders():
    async def scenario():
        strategy = ScriptedStrategy({0: OrderIntent.buy(0.1), 1: OrderIntent.buy(0.2)})
        session, port = make_session(strategy)
        await session.start(SessionMode.PAPER)
        await feed(session, port, SCENARIO_OHLC[:2])
        assert len(session.ledger.pending_orders) == 1
        assert session.snapshot().pending_orders == 1

        await session.kill()
        snap = session.snapshot()
        assert not snap.is_running
        assert snap.positions == ()
        assert session.ledger.pending_orders == ()
        assert snap.pending_orders == 0
        [trade] = session.engine.trades
        assert trade.reason == "kill switch"
        assert trade.price == 104
        assert snap.cash == pytest.approx(10000.1)
        assert snap.recent_logs[-1].level is LogLevel.ERROR
        assert "KILL SWITCH" in snap.recent_logs[-1].message

    asyncio.run(scenario())


def test_kill_when_idle_is_noop():
    async def scenario():
        session, _ = make_session()
        before = session.snapshot()
        await session.kill()
        assert session.snapshot() is before

    asyncio.run(scenario())


def test_kill_succeeds_when_venue_fails():
    async def scenario():
        venue = BrokenVenue()
        session, port = make_session(
            ScriptedStrategy({0: OrderIntent.buy(0.1)}),
            execution_factory=lambda creds: venue,
        )
        await session.start(SessionMode.LIVE, Credentials("key", "secret"))
        assert session.snapshot().mode is SessionMode.LIVE
        await feed(session, port, SCENARIO_OHLC[:2])
        assert venue.place_calls == 1
        assert any("not sent" in e.message for e in session.snapshot().recent_logs)

        await session.kill()
        snap = session.snapshot()
        assert not snap.is_running
        assert snap.positions == ()
        assert venue.cancel_calls == 1
        warnings = [e.message for e in snap.recent_logs if e.level is LogLevel.WARNING]
        assert any(m.startswith("Could not confirm order cancellation") for m in warnings)

    asyncio.run(scenario())


def test_stream_interruption_halts_session():
    async def scenario():
        session, port = make_session(ScriptedStrategy({0: OrderIntent.buy(0.1)}))
        await session.start(SessionMode.PAPER)
        await feed(session, port, SCENARIO_OHLC[:2])
        port.source.interrupt("socket closed")
        await wait_until(lambda: not session.snapshot().is_running)

        entry = last_log(session)
        assert entry.level is LogLevel.WARNING
        assert entry.message.startswith("Stream interrupted: socket closed")
        assert len(session.snapshot().positions) == 1
        assert port.closed == 1

    asyncio.run(scenario())


def test_feed_end_halts_session():
    async def scenario():
        session, port = make_session()
        await session.start(SessionMode.PAPER)
        port.source.end()
        await session.wait_closed()
        assert not session.snapshot().is_running
        assert "feed ended" in last_log(session).message

    asyncio.run(scenario())


def test_strategy_error_halts_session():
    async def scenario():
        session, port = make_session(ScriptedStrategy(fail_at=1))
        await session.start(SessionMode.PAPER)
        for bar in make_bars(SCENARIO_OHLC[:2]):
            port.source.publish(bar)
        await wait_until(lambda: not session.snapshot().is_running)
        entry = last_log(session)
        assert entry.level is LogLevel.ERROR
        assert entry.message.startswith("Strategy error:")
        assert session.snapshot().bars_processed == 2

    asyncio.run(scenario())


def test_log_ring_keeps_latest_entries():
    async def scenario():
        session, port = make_session()
        await session.start(SessionMode.PAPER)
        await feed(session, port, [(100, 101, 99, 100)] * 150)
        logs = session.snapshot().recent_logs
        assert len(logs) == 100
        assert logs[0].id != "log-1"
        ids = [int(e.id.split("-")[1]) for e in logs]
        assert ids == sorted(ids)
        await session.stop()

    asyncio.run(scenario())


def test_snapshots_are_immutable_values():
    async def scenario():
        session, port = make_session(ScriptedStrategy({0: OrderIntent.buy(0.1)}))
        await session.start(SessionMode.PAPER)
        await feed(session, port, SCENARIO_OHLC[:2])
        snap = session.snapshot()
        with pytest.raises(dataclasses.FrozenInstanceError):
            snap.equity = 0.0
        snap.positions[0].qty = 99
        assert session.ledger.position().qty == pytest.approx(0.1)

        await feed(session, port, SCENARIO_OHLC[2:3], start=make_bars(SCENARIO_OHLC)[2].time)
        assert snap.bars_processed == 2
        assert session.snapshot().bars_processed == 3
        await session.stop()

    asyncio.run(scenario())


def test_log_sinks_receive_entries():
    received = []

    async def scenario():
        session, _ = make_session(sinks=[received.append])
        await session.start(SessionMode.PAPER)
        await wait_until(lambda: len(received) >= 3)
        await session.stop()

    asyncio.run(scenario())
    assert "Initializing strategy engine..." in [e.message for e in received]


def test_credentials_repr_hides_secret():
    creds = Credentials("abc", "topsecret")
    assert "topsecret" not in repr(creds)
    assert creds.complete
    assert not Credentials("abc", "").complete


def test_synthetic_feed_runs_to_completion():
    from quantflow.data.synthetic import SyntheticBarFeed
    from quantflow.strategies.random_signal import RandomSignalStrategy

    async def scenario():
        feed = SyntheticBarFeed(count=40, start_price=100.0, seed=5, interval_seconds=0)
        session = LiveSessionController(RandomSignalStrategy(seed=2, entry_prob=0.5), feed, "BTCUSDT", "1m", 1000.0)
        await session.start(SessionMode.PAPER)
        await session.wait_closed()
        snap = session.snapshot()
        assert not snap.is_running
        assert snap.bars_processed == 40
        assert "feed ended" in snap.recent_logs[-1].message

    asyncio.run(scenario())


def test_static_source_replays_series_live(scenario_series, buy_then_close):
    from quantflow.data.sources import StaticBarSource

    async def scenario():
        session = LiveSessionController(buy_then_close, StaticBarSource(scenario_series), "BTCUSDT", "1h", 10000.0)
        await session.start(SessionMode.PAPER)
        await session.wait_closed()
        [trade] = session.engine.trades
        # same fills as the backtest of this series
        assert trade.realized_pnl == pytest.approx(-0.4)

    asyncio.run(scenario())


class HangingVenue(OrderExecutionPort):
    """Blocks every call until released, like an exchange that stopped answering."""

    def __init__(self):
        self.release = threading.Event()
        self.place_calls = 0
        self.cancel_calls = 0

    def place(self, order):
        self.place_calls += 1
        self.release.wait(5)
        raise ConnectionError("too late")

    def cancel_all(self, symbol=None):
        self.cancel_calls += 1
        self.release.wait(5)


def test_kill_does_not_wait_for_a_hanging_venue():
    venue = HangingVenue()

    async def scenario():
        session, port = make_session(
            ScriptedStrategy({0: OrderIntent.buy(0.1)}),
            execution_factory=lambda creds: venue,
            venue_timeout=0.5,
        )
        await session.start(SessionMode.LIVE, Credentials("key", "secret"))
        for bar in make_bars(SCENARIO_OHLC[:2]):
            port.source.publish(bar)
        # second bar's fill is now stuck in the venue
        await wait_until(lambda: venue.place_calls == 1)

        kill = asyncio.ensure_future(session.kill())
        await wait_until(lambda: not session.snapshot().is_running)
        # local state is flat while the venue calls are still pending
        assert session.snapshot().positions == ()
        assert not kill.done()

        await asyncio.wait_for(kill, 3.0)
        snap = session.snapshot()
        assert venue.cancel_calls == 1
        warnings = [e.message for e in snap.recent_logs if e.level is LogLevel.WARNING]
        assert any("Could not confirm order cancellation" in m for m in warnings)
        assert any(m.startswith("Order kill-tr-1 not confirmed") for m in warnings)
        assert "KILL SWITCH" in snap.recent_logs[-1].message
        venue.release.set()

    try:
        asyncio.run(scenario())
    finally:
        venue.release.set()


def test_failing_sink_is_logged(caplog):
    def broken_sink(entry):
        raise RuntimeError("sink down")

    async def scenario():
        session, _ = make_session(sinks=[broken_sink])
        await session.start(SessionMode.PAPER)
        await wait_until(lambda: any("Log sink failed" in r.getMessage() for r in caplog.records))
        await session.stop()

    with caplog.at_level(logging.ERROR, logger="quantflow.live"):
        asyncio.run(scenario())
    assert any("sink down" in r.getMessage() for r in caplog.records)
