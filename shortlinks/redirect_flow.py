"""Per-visit redirect state machine.

A flow starts from a :class:`~shortlinks.resolver.Resolution` and ends in
exactly one of ``DESTINATION`` or ``ERROR``::

    START --direct--------------------------------> DESTINATION
    START --timer--> TIMED --tick x N | skip------> DESTINATION
    START --ad-----> AD_GATE --skip | acknowledge-> DESTINATION
    START --not found / unavailable / storage----> ERROR

Events received after the flow finished, or after the visitor went away
(:meth:`RedirectFlow.cancel`), are ignored. Reporting a link is a side channel
and never changes the state.
"""
import asyncio
import enum
import logging
from typing import Callable

from shortlinks.models import RedirectType
from shortlinks.resolver import Outcome, Resolution

logger = logging.getLogger(__name__)

TIMER_SECONDS = 5
AD_GRACE_SECONDS = 1


class FlowState(str, enum.Enum):
    START = "start"
    TIMED = "timed"
    AD_GATE = "ad_gate"
    DESTINATION = "destination"
    ERROR = "error"


TERMINAL_STATES = {FlowState.DESTINATION, FlowState.ERROR}
INTERSTITIAL_STATES = {FlowState.TIMED, FlowState.AD_GATE}


class InvalidTransition(Exception):
    pass


class RedirectFlow:

    def __init__(
        self,
        on_report: Callable[[str, str], None] | None = None,
        timer_seconds: int = TIMER_SECONDS,
    ):
        self.state = FlowState.START
        self.history = [FlowState.START]
        self.short_code: str | None = None
        self.redirect_type: RedirectType | None = None
        self.countdown: int | None = None
        self.destination: str | None = None
        self.error: Outcome | None = None
        self.cancelled = False
        self._target: str | None = None
        self._on_report = on_report
        self._timer_seconds = timer_seconds

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def interstitial_steps(self) -> int:
        return sum(1 for state in self.history if state in INTERSTITIAL_STATES)

    def _move(self, state: FlowState) -> None:
        self.state = state
        self.history.append(state)

    def _arrive(self) -> None:
        self.destination = self._target
        self._move(FlowState.DESTINATION)

    def _accepting(self, event: str, *states: FlowState) -> bool:
        if self.finished or self.cancelled:
            return False
        if self.state not in states:
            raise InvalidTransition(f"{event} is not valid in state {self.state.value}")
        return True

    def begin(self, resolution: Resolution) -> FlowState:
        if self.state is not FlowState.START:
            raise InvalidTransition("flow already started")
        self.short_code = resolution.short_code

        if not resolution.resolved:
            self.error = resolution.outcome
            self._move(FlowState.ERROR)
            return self.state

        link = resolution.link
        self.redirect_type = RedirectType(link.redirect_type)
        self._target = link.original_url

        if self.redirect_type is RedirectType.TIMER:
            self.countdown = self._timer_seconds
            self._move(FlowState.TIMED)
        elif self.redirect_type is RedirectType.AD:
            self._move(FlowState.AD_GATE)
        else:
            self._arrive()
        return self.state

    def tick(self) -> bool:
        """One elapsed second of the countdown."""
        if not self._accepting("tick", FlowState.TIMED):
            return False
        self.countdown -= 1
        if self.countdown <= 0:
            self.countdown = 0
            self._arrive()
        return True

    def skip(self) -> bool:
        if not self._accepting("skip", FlowState.TIMED, FlowState.AD_GATE):
            return False
        self._arrive()
        return True

    def acknowledge(self) -> bool:
        """The visitor confirmed the ad was viewed."""
        if not self._accepting("acknowledge", FlowState.AD_GATE):
            return False
        self._arrive()
        return True

    def cancel(self) -> bool:
        if self.finished or self.cancelled:
            return False
        self.cancelled = True
        return True

    def report(self, reason: str) -> bool:
        if self.finished or self.cancelled or self.short_code is None:
            return False
        if self._on_report is not None:
            try:
                self._on_report(self.short_code, reason)
            except Exception:
                logger.exception("Report hook failed for %s", self.short_code)
        return True

    def snapshot(self) -> dict:
        return {
            "short_code": self.short_code,
            "redirect_type": self.redirect_type,
            "state": self.state.value,
            "countdown": self.countdown,
            "grace_seconds": AD_GRACE_SECONDS if self.state is FlowState.AD_GATE else None,
            "destination": self._target,
        }


async def run_countdown(flow: RedirectFlow, sleep=asyncio.sleep) -> str | None:
    """Drive a timed flow one tick per second.

    Cancelling the task cancels the flow, so no redirect fires afterwards.
    """
    try:
        while flow.state is FlowState.TIMED and not flow.cancelled:
            await sleep(1)
            flow.tick()
    except asyncio.CancelledError:
        flow.cancel()
        raise
    return flow.destination


async def acknowledge_after_grace(
    flow: RedirectFlow,
    sleep=asyncio.sleep,
    grace: float = AD_GRACE_SECONDS,
) -> str | None:
    if not flow.finished and flow.state is not FlowState.AD_GATE:
        raise InvalidTransition(f"acknowledge is not valid in state {flow.state.value}")
    try:
        await sleep(grace)
    except asyncio.CancelledError:
        flow.cancel()
        raise
    flow.acknowledge()
    return flow.destination
