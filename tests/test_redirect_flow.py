import asyncio
from types import SimpleNamespace

import pytest

from shortlinks import crud, schemas
from shortlinks.models import RedirectType
from shortlinks.redirect_flow import (
    AD_GRACE_SECONDS,
    TIMER_SECONDS,
    FlowState,
    InvalidTransition,
    RedirectFlow,
    acknowledge_after_grace,
    run_countdown,
)
from shortlinks.resolver import Outcome, Resolution, resolve

URL = "https://destination.example/page"


def resolved(redirect_type, code="abc123"):
    link = SimpleNamespace(redirect_type=redirect_type, original_url=URL)
    return Resolution(Outcome.RESOLVED, code, link)


def started(redirect_type, **kwargs):
    flow = RedirectFlow(**kwargs)
    flow.begin(resolved(redirect_type))
    return flow


def test_direct_link_end_to_end(db):
    link = crud.create_link(db, schemas.LinkCreate(original_url="example.com"))
    resolution = resolve(db, link.short_code)
    assert resolution.outcome is Outcome.RESOLVED
    assert crud.get_link(db, link.id).clicks == 1

    flow = RedirectFlow()
    assert flow.begin(resolution) is FlowState.DESTINATION
    assert flow.destination == "http://example.com"
    assert flow.interstitial_steps == 0
    assert flow.history == [FlowState.START, FlowState.DESTINATION]


def test_timer_reaches_destination_on_fifth_tick():
    flow = started(RedirectType.TIMER)
    assert flow.state is FlowState.TIMED
    assert flow.countdown == TIMER_SECONDS == 5

    for remaining in (4, 3, 2, 1):
        assert flow.tick()
        assert flow.countdown == remaining
        assert flow.state is FlowState.TIMED
        assert flow.destination is None

    assert flow.tick()
    assert flow.state is FlowState.DESTINATION
    assert flow.destination == URL
    # no further transitions
    assert flow.tick() is False
    assert flow.history.count(FlowState.DESTINATION) == 1


def test_timer_skip_goes_now():
    flow = started(RedirectType.TIMER)
    flow.tick()
    assert flow.skip()
    assert flow.state is FlowState.DESTINATION
    assert flow.countdown == 4
    assert flow.skip() is False


def test_cancelled_timer_never_arrives():
    flow = started(RedirectType.TIMER)
    flow.tick()
    assert flow.cancel()
    for _ in range(10):
        assert flow.tick() is False
    assert flow.skip() is False
    assert flow.state is FlowState.TIMED
    assert flow.destination is None


@pytest.mark.parametrize("event", ["skip", "acknowledge"])
def test_ad_gate_transitions_are_single_use(event):
    flow = started(RedirectType.AD)
    assert flow.state is FlowState.AD_GATE
    assert getattr(flow, event)()
    assert flow.state is FlowState.DESTINATION
    assert flow.skip() is False
    assert flow.acknowledge() is False
    assert flow.history == [FlowState.START, FlowState.AD_GATE, FlowState.DESTINATION]


def test_ad_gate_does_not_tick():
    flow = started(RedirectType.AD)
    with pytest.raises(InvalidTransition):
        flow.tick()


def test_timer_cannot_be_acknowledged():
    flow = started(RedirectType.TIMER)
    with pytest.raises(InvalidTransition):
        flow.acknowledge()


@pytest.mark.parametrize("outcome", [Outcome.NOT_FOUND, Outcome.UNAVAILABLE, Outcome.TRANSIENT_ERROR])
def test_failed_resolution_ends_in_error(outcome):
    flow = RedirectFlow()
    assert flow.begin(Resolution(outcome, "abc123")) is FlowState.ERROR
    assert flow.error is outcome
    assert flow.destination is None
    assert flow.finished
    assert flow.cancel() is False


def test_flow_cannot_restart():
    flow = started(RedirectType.DIRECT)
    with pytest.raises(InvalidTransition):
        flow.begin(resolved(RedirectType.DIRECT))


@pytest.mark.parametrize("redirect_type", [RedirectType.TIMER, RedirectType.AD])
def test_report_is_a_side_channel(redirect_type):
    reports = []
    flow = started(redirect_type, on_report=lambda code, reason: reports.append((code, reason)))
    state, countdown = flow.state, flow.countdown

    assert flow.report("phishing")
    assert reports == [("abc123", "phishing")]
    assert (flow.state, flow.countdown) == (state, countdown)

    assert flow.skip()
    assert flow.state is FlowState.DESTINATION
    assert flow.report("too late") is False
    assert len(reports) == 1


def test_failing_report_hook_does_not_block_the_flow():
    def broken(code, reason):
        raise RuntimeError("report service down")

    flow = started(RedirectType.AD, on_report=broken)
    assert flow.report("spam")
    assert flow.acknowledge()


def test_snapshot_of_interstitial():
    snapshot = started(RedirectType.AD).snapshot()
    assert snapshot["state"] == "ad_gate"
    assert snapshot["grace_seconds"] == AD_GRACE_SECONDS
    assert snapshot["destination"] == URL


def test_run_countdown_sleeps_one_second_per_tick():
    flow = started(RedirectType.TIMER)
    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    assert asyncio.run(run_countdown(flow, sleep=fake_sleep)) == URL
    assert sleeps == [1] * TIMER_SECONDS
    assert flow.state is FlowState.DESTINATION


def test_run_countdown_stops_when_skipped():
    flow = started(RedirectType.TIMER)
    sleeps = []

    async def skip_on_second_tick(seconds):
        sleeps.append(seconds)
        if len(sleeps) == 2:
            flow.skip()

    assert asyncio.run(run_countdown(flow, sleep=skip_on_second_tick)) == URL
    assert len(sleeps) == 2


def test_cancelling_countdown_task_cancels_flow():
    flow = started(RedirectType.TIMER)

    async def scenario():
        waiting = asyncio.Event()

        async def slow_sleep(seconds):
            waiting.set()
            await asyncio.sleep(3600)

        task = asyncio.create_task(run_countdown(flow, sleep=slow_sleep))
        await waiting.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())
    assert flow.cancelled
    assert flow.state is FlowState.TIMED
    assert flow.destination is None
    assert flow.tick() is False


def test_acknowledge_after_grace():
    flow = started(RedirectType.AD)
    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    assert asyncio.run(acknowledge_after_grace(flow, sleep=fake_sleep)) == URL
    assert sleeps == [AD_GRACE_SECONDS]


def test_cancelled_grace_delay_never_arrives():
    flow = started(RedirectType.AD)

    async def scenario():
        task = asyncio.create_task(acknowledge_after_grace(flow, grace=3600))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())
    assert flow.cancelled
    assert flow.state is FlowState.AD_GATE


def test_acknowledge_after_grace_requires_ad_gate():
    flow = started(RedirectType.TIMER)
    with pytest.raises(InvalidTransition):
        asyncio.run(acknowledge_after_grace(flow))
