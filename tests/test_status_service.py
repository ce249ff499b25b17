import asyncio
import json

import pytest

from orion.backends.nanodlp.simulated import SimulatedNanoDlpClient
from orion.backends.nanodlp.thumbnails import generate_placeholder
from orion.core.exceptions import ActionFailedError, TransportError
from orion.services.analytics_service import AnalyticsService
from orion.services.state_notifier import StateNotifier
from orion.services.status_service import (
    AWAITING_TIMEOUT,
    INITIAL_MAX_POLL_INTERVAL,
    MIN_POLL_INTERVAL,
    FetchPhase,
    StatusService,
    TransportMode,
)
from orion.services.thumbnail_cache import ThumbnailCache

from tests.conftest import idle_payload, printing_payload, settle


@pytest.fixture
async def make_engine(backend, clock, wall_clock, parking_sleep, rng):
    engines = []

    def _make(options, **kwargs):
        engine = StatusService(
            backend,
            options,
            thumbnails=ThumbnailCache(backend, clock=clock),
            clock=clock,
            wall_clock=wall_clock,
            sleep=parking_sleep,
            rng=rng,
            **kwargs,
        )
        engines.append(engine)
        return engine

    yield _make
    for engine in engines:
        await engine.stop()


@pytest.fixture
def engine(make_engine, odyssey_options):
    return make_engine(odyssey_options)


# -- fetch and notify -------------------------------------------------------------


async def test_first_success_populates_view(engine, backend):
    assert engine.initial_attempt_in_progress
    await engine.refresh()
    assert engine.status is not None
    assert engine.status.is_idle
    assert engine.has_ever_connected
    assert not engine.initial_attempt_in_progress
    assert engine.error is None
    view = engine.view()
    assert view["is_idle"] is True
    assert view["progress"] == 0.0
    assert view["device_status_message"] == "Idle"


async def test_identical_idle_payload_is_not_renotified(engine):
    await engine.refresh()
    await engine.refresh()
    assert engine.notify_count == 1


async def test_active_job_always_notifies(engine, backend):
    backend.default_status = printing_payload(layer=5)
    await engine.refresh()
    before = engine.notify_count
    await engine.refresh()
    assert engine.notify_count == before + 1


async def test_notifier_receives_view(make_engine, odyssey_options):
    notifier = StateNotifier()
    seen = []
    notifier.register(lambda channel, payload: seen.append((channel, payload)))
    engine = make_engine(odyssey_options, notifier=notifier)
    await engine.refresh()
    assert [channel for channel, _ in seen] == ["status"]
    assert seen[0][1]["is_idle"] is True


# -- malformed payloads ------------------------------------------------------------


async def test_infinite_layer_is_parsed_as_missing(engine, backend):
    backend.default_status = json.loads('{"status": "Printing", "layer": 1e999, "print_data": {"layer_count": 100}}')
    await engine.refresh()
    assert engine.error is None
    assert engine.status.layer is None
    assert engine.view()["progress"] == 0.0


async def test_infinite_values_do_not_stop_polling(engine, backend, parking_sleep):
    backend.status_results = [
        json.loads('{"status": "Idle", "print_data": {"print_time": "1e999"}}'),
        json.loads('{"status": "Printing", "layer": 1e999, "resin": 1e999, "print_data": {"layer_count": 100}}'),
    ]
    backend.default_status = printing_payload(layer=7)
    parking_sleep.free_passes = 2
    await engine.start()
    await settle(60)
    assert backend.status_calls == 3
    assert parking_sleep.calls == [MIN_POLL_INTERVAL] * 3
    assert engine.transport_mode is TransportMode.POLLING
    assert engine.error is None
    assert engine.status.layer == 7


class _RejectingSnapshot:
    @classmethod
    def from_payload(cls, raw):
        raise ValueError("unexpected payload shape")


async def test_payload_processing_error_counts_as_failed_fetch(engine, monkeypatch):
    monkeypatch.setattr("orion.services.status_service.StatusSnapshot", _RejectingSnapshot)
    await engine.refresh()
    assert engine.error == "unexpected payload shape"
    assert engine.consecutive_errors == 1
    assert engine.fetch_phase is FetchPhase.BACKING_OFF


# -- backoff ----------------------------------------------------------------------


async def test_failures_back_off_with_initial_cap(engine, backend, transport_error):
    backend.status_results = [transport_error] * 3
    for _ in range(3):
        await engine.refresh(force=True)
    assert engine.error == "connection refused"
    assert engine.consecutive_errors == 3
    assert engine.fetch_phase is FetchPhase.BACKING_OFF
    assert engine.poll_interval == INITIAL_MAX_POLL_INTERVAL
    assert not engine.initial_attempt_in_progress

    await engine.refresh()
    assert backend.status_calls == 3

    await engine.refresh(force=True)
    assert engine.consecutive_errors == 0
    assert engine.error is None
    assert engine.poll_interval == MIN_POLL_INTERVAL
    assert engine.fetch_phase is FetchPhase.IDLE


async def test_backoff_cap_lifts_after_first_success(engine, backend, transport_error):
    await engine.refresh()
    backend.status_results = [transport_error] * 6
    for _ in range(6):
        await engine.refresh(force=True)
    assert engine.poll_interval == 60


async def test_single_failure_delay_is_jittered_within_cap(engine, backend, transport_error):
    backend.status_results = [transport_error]
    await engine.refresh(force=True)
    assert 4 <= engine.poll_interval <= INITIAL_MAX_POLL_INTERVAL


# -- layer timing and temperatures ----------------------------------------------------


async def test_layer_delta_measured_on_increase(engine, backend, clock):
    backend.default_status = printing_payload(layer=3)
    await engine.refresh()
    clock.advance(4.5)
    backend.default_status = printing_payload(layer=4)
    await engine.refresh()
    assert engine.prev_layer_seconds == pytest.approx(4.5)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (3.2, 3.2),
        (5_500_000, 5.5),
        (7_250_000_000, 7.25),
    ],
)
async def test_prev_layer_time_units(engine, backend, raw, expected):
    backend.default_status = printing_payload(layer=3, PrevLayerTime=raw)
    await engine.refresh()
    assert engine.prev_layer_seconds == pytest.approx(expected)


async def test_analytics_layer_time_wins_while_printing(make_engine, backend, odyssey_options):
    analytics = AnalyticsService(backend, odyssey_options)
    analytics.ingest_batch([{"ID": 1, "T": 9, "V": 6.5}, {"ID": 2, "T": 11, "V": 41.0}])
    engine = make_engine(odyssey_options, analytics=analytics)
    backend.default_status = printing_payload(layer=3, PrevLayerTime=2.0)
    await engine.refresh()
    assert engine.current_layer_seconds == 6.5
    assert engine.prev_layer_seconds == 6.5
    assert engine.mcu_temperature == 41.0

    backend.default_status = idle_payload()
    await engine.refresh()
    assert engine.current_layer_seconds is None


@pytest.mark.parametrize(
    ("payload", "resin", "cpu"),
    [
        ({"resin": 24.7, "temp": "48.2"}, 24, 48.2),
        ({"ResinTemperature": "25.6 °C", "cpu_temp": 51}, 26, 51.0),
        ({"resin": True}, None, None),
    ],
)
async def test_temperatures(engine, backend, payload, resin, cpu):
    backend.default_status = idle_payload(**payload)
    await engine.refresh()
    assert engine.resin_temperature == resin
    assert engine.cpu_temperature == cpu


# -- thumbnails -------------------------------------------------------------------


async def test_real_thumbnail_fetched_once_for_job(engine, backend):
    backend.default_status = printing_payload()
    await engine.refresh()
    await engine.refresh()
    assert engine.thumbnail == b"\x89PNG-real"
    assert engine.thumbnail_ready
    assert engine.new_print_ready
    assert backend.thumbnail_calls == [("Local", "jobs/part.zip", "Large")]


async def test_placeholder_accepted_after_retries(engine, backend):
    backend.default_status = printing_payload()
    backend.thumbnail_result = "placeholder"
    for _ in range(3):
        await engine.refresh()
        assert not engine.thumbnail_ready
    await engine.refresh()
    assert engine.thumbnail_ready
    assert engine.thumbnail == generate_placeholder(800, 480)
    assert engine.thumbnail_is_placeholder


async def test_idle_status_does_not_fetch_thumbnail(engine, backend):
    await engine.refresh()
    assert backend.thumbnail_calls == []
    assert not engine.new_print_ready


# -- actions ----------------------------------------------------------------------


async def test_pause_requires_status(engine, backend):
    assert await engine.pause_or_resume() is None
    assert backend.calls == []


async def test_overlapping_pause_calls_backend_once(engine, backend):
    backend.default_status = printing_payload()
    await engine.refresh()
    backend.action_gate = asyncio.Event()

    first = asyncio.ensure_future(engine.pause_or_resume())
    await settle()
    assert engine.is_pausing
    assert await engine.pause_or_resume() is None
    backend.action_gate.set()
    assert await first is True
    assert backend.calls == ["pause"]

    # Still pausing until a snapshot reports the pause.
    assert engine.is_pausing
    backend.default_status = printing_payload(paused=True)
    await engine.refresh()
    assert not engine.is_pausing
    assert engine.view()["display_label"] == "Paused"


async def test_failed_pause_reverts_flag(engine, backend):
    backend.default_status = printing_payload()
    await engine.refresh()
    backend.action_error = ActionFailedError("rejected")
    assert await engine.pause_or_resume() is False
    assert not engine.is_pausing


async def test_resume_clears_flag_immediately(engine, backend):
    backend.default_status = printing_payload(paused=True)
    await engine.refresh()
    assert await engine.pause_or_resume() is True
    assert backend.calls == ["resume"]
    assert not engine.is_pausing


async def test_failed_cancel_keeps_flag_until_snapshot_settles(engine, backend):
    backend.default_status = printing_payload()
    await engine.refresh()
    backend.action_error = ActionFailedError("rejected")
    assert await engine.cancel() is False
    assert engine.is_canceling
    assert engine.view()["display_label"] == "Canceling"
    assert await engine.cancel() is None

    backend.default_status = idle_payload()
    await engine.refresh()
    assert not engine.is_canceling


async def test_cancel_latch_from_backend_sets_canceling(engine, backend):
    backend.default_status = printing_payload(cancel_latched=True)
    await engine.refresh()
    assert engine.is_canceling


# -- reset and the awaiting gate -------------------------------------------------------


async def test_awaiting_gate_times_out_strictly_after_twelve_seconds(engine, clock):
    task = await engine.reset_status()
    await task
    assert engine.awaiting_new_print_data
    clock.advance(12.0)
    assert engine.awaiting_new_print_data
    clock.advance(0.001)
    assert not engine.awaiting_new_print_data


async def test_active_job_clears_awaiting_gate(engine, backend):
    task = await engine.reset_status()
    await task
    assert engine.awaiting_new_print_data
    backend.default_status = printing_payload()
    await engine.refresh()
    assert not engine.awaiting_new_print_data


async def test_reset_purges_and_shows_spinner(engine, backend, clock):
    backend.default_status = printing_payload()
    await engine.refresh()
    count = engine.notify_count

    task = await engine.reset_status(initial_thumbnail=b"seed", initial_file_path="jobs/next.zip")
    assert engine.notify_count == count + 1
    assert engine.status is None
    assert engine.thumbnail == b"seed"
    assert engine.thumbnail_ready
    assert engine.min_spinner_active
    assert engine.view()["loading"] is True

    backend.default_status = idle_payload()
    await task
    assert engine.min_spinner_active
    clock.advance(2.0)
    assert not engine.min_spinner_active
    assert engine.view()["loading"] is False


async def test_awaiting_timeout_notifies_without_new_snapshot(backend, odyssey_options, clock):
    notifier = StateNotifier()
    seen = []
    notifier.register(lambda channel, payload: seen.append(payload))
    timeout_elapsed = asyncio.Event()

    async def sleep(delay):
        if delay == AWAITING_TIMEOUT:
            await timeout_elapsed.wait()
            clock.advance(delay)
            return
        await asyncio.Event().wait()

    engine = StatusService(backend, odyssey_options, notifier=notifier, clock=clock, sleep=sleep)
    try:
        task = await engine.reset_status()
        await task
        await settle()
        assert seen[-1]["awaiting_new_print_data"] is True
        calls = backend.status_calls

        timeout_elapsed.set()
        await settle()
        assert backend.status_calls == calls
        assert seen[-1]["awaiting_new_print_data"] is False
        assert not engine.awaiting_new_print_data
    finally:
        await engine.stop()


async def test_reset_forgets_backend_latches(engine, backend):
    task = await engine.reset_status()
    await task
    assert backend.reset_calls == 1


async def test_stale_cancel_latch_does_not_release_awaiting_gate(nanodlp_options, clock, parking_sleep, rng):
    client = SimulatedNanoDlpClient(clock=clock, sleep=parking_sleep)
    engine = StatusService(client, nanodlp_options, clock=clock, sleep=parking_sleep, rng=rng)
    try:
        await client.start_print("Local", "sim_part_1.zip")
        await client.get_status()
        await client.cancel_print()
        await engine.refresh()
        await engine.refresh()
        assert engine.status.cancel_latched

        task = await engine.reset_status()
        await task
        assert engine.status.is_idle
        assert not engine.status.cancel_latched
        assert engine.awaiting_new_print_data
    finally:
        await engine.stop()


# -- transport selection ------------------------------------------------------------


async def test_unsupported_stream_falls_back_to_polling(engine, backend, parking_sleep):
    await engine.start()
    await settle()
    assert backend.stream_opened == 1
    assert engine.sse_supported is False
    assert engine.transport_mode is TransportMode.POLLING
    assert backend.status_calls == 1
    assert parking_sleep.calls == [MIN_POLL_INTERVAL]
    assert engine.next_retry_at is None


async def test_live_stream_replaces_polling(engine, backend):
    backend.stream_error = None
    await engine.start()
    await settle()
    assert engine.sse_connected
    assert engine.sse_supported is True
    assert engine.transport_mode is TransportMode.STREAMING

    await backend.stream_queue.put(printing_payload(layer=9))
    await settle()
    assert engine.status.layer == 9
    assert backend.status_calls == 0


async def test_stream_end_reconnects_and_polls(engine, backend, wall_clock):
    backend.stream_error = None
    await engine.start()
    await settle()
    await backend.stream_queue.put(None)
    await settle()
    assert not engine.sse_connected
    assert engine.transport_mode is TransportMode.POLLING
    assert backend.status_calls == 1
    assert engine.next_retry_at is not None
    assert engine.next_retry_at > wall_clock()


async def test_stream_failure_with_healthy_polling_marks_unsupported(engine, backend):
    await engine.refresh()
    backend.stream_error = TransportError("404")
    await engine.start()
    await settle()
    assert engine.sse_supported is False
    assert engine.next_retry_at is None
    assert engine.transport_mode is TransportMode.POLLING


async def test_stream_failure_before_any_success_schedules_reconnect(engine, backend, wall_clock):
    backend.stream_error = TransportError("refused")
    await engine.start()
    await settle()
    assert engine.sse_supported is None
    assert engine.has_ever_connected
    assert wall_clock() + 6 <= engine.next_retry_at <= wall_clock() + 9


async def test_poll_recovery_retries_stream_soon(engine, backend, wall_clock, parking_sleep, transport_error):
    backend.stream_error = TransportError("refused")
    backend.status_results = [transport_error]
    await engine.start()
    await settle()
    assert engine.consecutive_errors == 1

    await engine.refresh(force=True)
    await settle()
    assert engine.consecutive_errors == 0
    assert engine.next_retry_at == pytest.approx(wall_clock() + 0.25)
    assert parking_sleep.calls[-1] == 0.25


async def test_nanodlp_mode_never_opens_stream(make_engine, backend, nanodlp_options):
    engine = make_engine(nanodlp_options)
    await engine.start()
    await settle()
    assert backend.stream_opened == 0
    assert engine.transport_mode is TransportMode.POLLING
    assert engine.sse_supported is None


async def test_pause_and_resume_polling(make_engine, backend, nanodlp_options):
    engine = make_engine(nanodlp_options)
    await engine.start()
    await settle()
    await engine.pause_polling()
    assert engine.polling_paused
    assert engine.transport_mode is TransportMode.UNINITIALIZED

    await engine.resume_polling()
    await settle()
    assert engine.transport_mode is TransportMode.POLLING
    assert backend.status_calls == 2


async def test_stop_disposes_engine(engine, backend):
    await engine.start()
    await settle()
    await engine.stop()
    calls = backend.status_calls
    await engine.refresh(force=True)
    assert backend.status_calls == calls
    assert engine.transport_mode is TransportMode.UNINITIALIZED
