import asyncio

import pytest

from duckembed import SingleFlight


@pytest.mark.asyncio
async def test_concurrent_calls_share_one_execution():
    flight: SingleFlight[int] = SingleFlight()
    calls = 0

    async def operation() -> int:
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.01)
        return 42

    results = await asyncio.gather(*(flight.run(operation) for _ in range(20)))

    assert calls == 1
    assert results == [42] * 20
    assert flight.done
    assert not flight.running
    assert flight.result == 42


@pytest.mark.asyncio
async def test_result_is_memoized():
    flight: SingleFlight[str] = SingleFlight()
    calls = 0

    async def operation() -> str:
        nonlocal calls
        calls += 1
        return "ok"

    await flight.run(operation)
    await flight.run(operation)

    assert calls == 1


@pytest.mark.asyncio
async def test_failure_allows_retry():
    flight: SingleFlight[str] = SingleFlight()
    attempts = 0

    async def operation() -> str:
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            raise RuntimeError("first attempt fails")
        return "second attempt"

    with pytest.raises(RuntimeError, match="first attempt fails"):
        await flight.run(operation)
    assert not flight.done
    assert not flight.running

    assert await flight.run(operation) == "second attempt"
    assert attempts == 2


@pytest.mark.asyncio
async def test_failure_is_shared_by_concurrent_callers():
    flight: SingleFlight[None] = SingleFlight()
    calls = 0

    async def operation() -> None:
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.01)
        raise ValueError("boom")

    results = await asyncio.gather(
        *(flight.run(operation) for _ in range(5)), return_exceptions=True
    )

    assert calls == 1
    assert all(isinstance(r, ValueError) for r in results)


@pytest.mark.asyncio
async def test_reset_while_in_flight_discards_stale_result():
    flight: SingleFlight[int] = SingleFlight()
    release = asyncio.Event()

    async def slow() -> int:
        await release.wait()
        return 1

    stale = asyncio.ensure_future(flight.run(slow))
    await asyncio.sleep(0)
    flight.reset()
    release.set()

    assert await stale == 1
    assert not flight.done

    async def fresh() -> int:
        return 2

    assert await flight.run(fresh) == 2


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_cancel_shared_run():
    flight: SingleFlight[str] = SingleFlight()
    release = asyncio.Event()

    async def operation() -> str:
        await release.wait()
        return "done"

    first = asyncio.ensure_future(flight.run(operation))
    second = asyncio.ensure_future(flight.run(operation))
    await asyncio.sleep(0)

    first.cancel()
    release.set()

    assert await second == "done"
    with pytest.raises(asyncio.CancelledError):
        await first
    assert flight.done


def test_result_before_completion_raises():
    flight: SingleFlight[int] = SingleFlight()
    with pytest.raises(RuntimeError, match="has not completed"):
        _ = flight.result
