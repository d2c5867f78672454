import asyncio
import random

from textera.progress import ProgressSimulator


def test_advance_is_monotonic_and_stays_below_100():
    p = ProgressSimulator(max_step=30, rng=random.Random(7))
    seen = [p.advance() for _ in range(50)]
    assert seen == sorted(seen)
    assert max(seen) == 99.0
    assert not p.completed


def test_finish_reports_100_exactly_once():
    values = []
    p = ProgressSimulator(rng=random.Random(1), on_change=values.append)
    p.advance()
    p.finish()
    p.finish()
    p.advance()
    assert p.value == 100.0
    assert values.count(100.0) == 1
    assert values[-1] == 100.0


def test_ticker_runs_until_closed():
    values = []

    async def run() -> ProgressSimulator:
        p = ProgressSimulator(interval=0.001, max_step=1.0, rng=random.Random(3), on_change=values.append)
        p.start()
        await asyncio.sleep(0.05)
        assert p.running
        await p.aclose()
        return p

    p = asyncio.run(run())
    assert not p.running
    assert p.completed
    assert len(values) > 1
    assert values[-1] == 100.0
    assert all(v < 100.0 for v in values[:-1])
