"""NanoDLP state canonicalization.

NanoDLP reports an integer state code that is only loosely tied to what the
printer is actually doing. While a cancel is finishing the device briefly
reports Idle, so a cancel request (code 4) latches until the next fresh print
start (``0 -> 1``).

Known codes: 0 idle, 1 starting, 2 pausing, 3 paused, 4 cancel requested,
5 printing.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from orion.backends.nanodlp.status import NanoStatus
from orion.models import PrinterStatus

logger = logging.getLogger(__name__)

STATE_IDLE = 0
STATE_STARTING = 1
STATE_PAUSING = 2
STATE_PAUSED = 3
STATE_CANCEL_REQUESTED = 4
STATE_PRINTING = 5
STATE_UNKNOWN = -1


@dataclass(frozen=True)
class LatchState:
    cancel_latched: bool = False
    prev_state_code: int = STATE_UNKNOWN


@dataclass(frozen=True)
class CanonicalStatus:
    state_code: int
    status: PrinterStatus
    paused: bool = False
    cancel_latched: bool = False
    pause_latched: bool = False
    finished: bool = False

    def report_key(self) -> tuple:
        return (
            self.state_code,
            self.status,
            self.cancel_latched,
            self.pause_latched,
            self.finished,
        )


def resolve_state_code(status: NanoStatus) -> int:
    """Prefer the explicit code; otherwise infer it from the textual hints."""
    if status.state_code is not None:
        return status.state_code
    text = status.state
    if text == "printing" or status.printing:
        return STATE_PRINTING
    if text == "paused" or status.paused:
        return STATE_PAUSED
    if text == "idle":
        return STATE_IDLE
    return STATE_UNKNOWN


def canonicalize(status: NanoStatus, latch: LatchState) -> tuple[LatchState, CanonicalStatus]:
    """Map one raw status onto the canonical tuple.

    Pure: the same ``(status, latch)`` always yields the same result, and the
    caller owns storing the returned latch for the next poll.
    """
    code = resolve_state_code(status)

    cancel_latched = latch.cancel_latched
    if code == STATE_CANCEL_REQUESTED:
        cancel_latched = True
    if latch.prev_state_code == STATE_IDLE and code == STATE_STARTING:
        cancel_latched = False

    next_latch = LatchState(cancel_latched=cancel_latched, prev_state_code=code)

    if cancel_latched:
        if code == STATE_IDLE:
            return next_latch, CanonicalStatus(code, PrinterStatus.IDLE, cancel_latched=True)
        return next_latch, CanonicalStatus(code, PrinterStatus.CANCELING, cancel_latched=True)

    if code == STATE_PAUSED:
        return next_latch, CanonicalStatus(code, PrinterStatus.PAUSED, paused=True)
    if code in (STATE_STARTING, STATE_PRINTING):
        return next_latch, CanonicalStatus(code, PrinterStatus.PRINTING)
    if code == STATE_PAUSING:
        return next_latch, CanonicalStatus(code, PrinterStatus.PAUSING, pause_latched=True)

    if status.paused:
        return next_latch, CanonicalStatus(code, PrinterStatus.PAUSED, paused=True)
    if status.printing:
        return next_latch, CanonicalStatus(code, PrinterStatus.PRINTING)

    # An idle payload still carrying layer or plate data most likely means a
    # job just ended, as opposed to a printer that never ran anything.
    finished = (
        status.layer_id is not None
        or status.layers_count is not None
        or status.file is not None
    )
    return next_latch, CanonicalStatus(code, PrinterStatus.IDLE, finished=finished)


class NanoDlpStateHandler:
    """Holds the latch across polls and logs state transitions once."""

    def __init__(self) -> None:
        self._latch = LatchState()
        self._last_reported: Optional[CanonicalStatus] = None

    @property
    def latch(self) -> LatchState:
        return self._latch

    def reset(self) -> None:
        self._latch = LatchState()

    def canonicalize(self, status: NanoStatus) -> CanonicalStatus:
        self._latch, result = canonicalize(status, self._latch)
        self._report_if_changed(result)
        return result

    def _report_if_changed(self, result: CanonicalStatus) -> None:
        previous = self._last_reported
        if previous is not None and previous.report_key() == result.report_key():
            return
        prev_code = "unknown" if previous is None else str(previous.state_code)
        cur_code = "unknown" if result.state_code < 0 else str(result.state_code)
        prev_status = "unknown" if previous is None else previous.status.value
        logger.info(
            "state %s -> %s | status %s -> %s | cancel_latched: %s | pause_latched: %s | finished: %s",
            prev_code,
            cur_code,
            prev_status,
            result.status.value,
            result.cancel_latched,
            result.pause_latched,
            result.finished,
        )
        self._last_reported = result
