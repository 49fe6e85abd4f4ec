import asyncio
import logging

import pytest

from knowledge_hub.errors import BackendUnreachable
from knowledge_hub.orchestrator.steps import (
    CriticalStepFailed,
    Failure,
    Step,
    StepRunner,
    Success,
    run_step,
)


async def _ok(value):
    return value


async def _fail():
    raise BackendUnreachable("graph", "connection refused")


@pytest.mark.asyncio
async def test_success_keeps_payload():
    outcome = await run_step(Step("ok", lambda: _ok({"a": 1})))

    assert outcome.result == Success({"a": 1})
    assert outcome.value == {"a": 1}
    assert outcome.degraded is False


@pytest.mark.asyncio
async def test_non_critical_failure_uses_fallback(caplog):
    caplog.set_level(logging.WARNING, logger="knowledge_hub.orchestrator.steps")

    outcome = await run_step(Step("graph", _fail, fallback=[]))

    assert isinstance(outcome.result, Failure)
    assert isinstance(outcome.result.error, BackendUnreachable)
    assert outcome.value == []
    assert outcome.degraded is True
    assert "Step graph failed" in caplog.text


@pytest.mark.asyncio
async def test_fallback_is_copied_per_run():
    fallback = {"entities": []}
    step = Step("extract", _fail, fallback=fallback)

    first = await run_step(step)
    first.value["entities"].append("mutated")
    second = await run_step(step)

    assert second.value == {"entities": []}
    assert fallback == {"entities": []}


@pytest.mark.asyncio
async def test_critical_failure_raises():
    with pytest.raises(CriticalStepFailed) as excinfo:
        await run_step(Step("store_document", _fail, critical=True))

    assert excinfo.value.step == "store_document"
    assert isinstance(excinfo.value.cause, BackendUnreachable)
    assert excinfo.value.status_code == 500


@pytest.mark.asyncio
async def test_runner_tracks_degraded_steps():
    runner = StepRunner()

    first = await runner.run(Step("first", lambda: _ok(1)))
    second = await runner.run(Step("second", _fail, fallback=0))
    runner.skip("third", None)

    assert (first, second) == (1, 0)
    assert runner.degraded == ["second"]
    assert [outcome.name for outcome in runner.outcomes] == ["first", "second", "third"]


@pytest.mark.asyncio
async def test_gather_runs_concurrently_and_keeps_order():
    started = asyncio.Event()
    order = []

    async def waits():
        await started.wait()
        order.append("waits")
        return "a"

    async def releases():
        order.append("releases")
        started.set()
        return "b"

    runner = StepRunner()
    values = await asyncio.wait_for(
        runner.gather(Step("waits", waits), Step("releases", releases), Step("bad", _fail)),
        timeout=1,
    )

    assert values == ["a", "b", None]
    assert order == ["releases", "waits"]
    assert runner.degraded == ["bad"]
