import pytest

from orion.core.config import AnalyticsConfig, RuntimeOptions
from orion.services.analytics_service import AnalyticsService
from orion.services.state_notifier import StateNotifier

from tests.conftest import settle


def entry(entry_id, metric, value):
    return {"ID": entry_id, "T": metric, "V": value}


@pytest.fixture
def make_service(backend, clock, wall_clock, parking_sleep):
    def _make(options, **config):
        return AnalyticsService(
            backend,
            options,
            AnalyticsConfig(**config),
            clock=clock,
            wall_clock=wall_clock,
            sleep=parking_sleep,
        )

    return _make


def test_capacity_follows_window_and_rate(make_service, nanodlp_options, odyssey_options):
    assert make_service(nanodlp_options).capacity == 120
    assert make_service(nanodlp_options, fast_hz=5, window_seconds=10).capacity == 50
    assert make_service(odyssey_options, poll_interval=0.5, window_seconds=30).capacity == 60


async def test_fast_path_and_first_batch(make_service, backend, nanodlp_options, wall_clock):
    backend.analytics_entries = [
        entry(3, 7, "21.5"),
        entry(1, 7, 20.0),
        entry(2, 7, 21.0),
        entry(9, 6, 99.0),
    ]
    service = make_service(nanodlp_options)
    await service.refresh()

    assert service.loading is False
    assert [point.v for point in service.series("Pressure")] == [1.5]
    assert service.series("Pressure")[0].id == int(wall_clock() * 1000)
    assert [point.id for point in service.series("TemperatureInside")] == [1, 2, 3]
    assert service.latest("TemperatureInside") == 21.5


async def test_batch_runs_every_nth_cycle_and_dedupes(make_service, backend, nanodlp_options):
    backend.analytics_entries = [entry(1, 7, 20.0), entry(2, 7, 21.0)]
    service = make_service(nanodlp_options, batch_every=3)
    await service.refresh()

    backend.analytics_entries = [entry(2, 7, 21.0), entry(3, 7, 22.0)]
    await service.refresh()
    assert len(service.series("TemperatureInside")) == 2

    await service.refresh()
    assert [point.id for point in service.series("TemperatureInside")] == [1, 2, 3]


async def test_failed_fast_sample_is_skipped(make_service, backend, nanodlp_options, transport_error):
    backend.analytic_value = transport_error
    service = make_service(nanodlp_options)
    await service.refresh()
    assert service.loading is True
    assert service.last_error == "connection refused"
    assert service.keys() == []


async def test_series_bounded_by_capacity(make_service, backend, nanodlp_options):
    backend.analytics_entries = [entry(i, 8, float(i)) for i in range(10)]
    service = make_service(nanodlp_options, fast_hz=2, window_seconds=2)
    await service.refresh()
    series = service.series("TemperatureOutside")
    assert len(series) == 4
    assert [point.v for point in series] == [6.0, 7.0, 8.0, 9.0]


def test_unknown_metric_uses_numeric_key(make_service, nanodlp_options):
    service = make_service(nanodlp_options)
    assert service.ingest_batch([entry(1, 99, 1.0), {"ID": "x"}, "junk"]) == 1
    assert service.keys() == ["99"]


def test_ingest_sample_flattens_one_level(make_service, odyssey_options):
    service = make_service(odyssey_options)
    added = service.ingest_sample(
        {
            "layer": 4,
            "paused": False,
            "status": "Printing",
            "physical_state": {"z": 0.2, "curing": True, "extra": {"deep": 1}},
        }
    )
    assert added == 2
    assert service.keys() == ["layer", "physical_state.z"]
    assert service.ingest_sample(["not", "a", "mapping"]) == 0


async def test_publishes_latest_values(backend, nanodlp_options, wall_clock, parking_sleep):
    notifier = StateNotifier()
    seen = []
    notifier.register(lambda channel, payload: seen.append((channel, payload)))
    service = AnalyticsService(
        backend, nanodlp_options, notifier=notifier, wall_clock=wall_clock, sleep=parking_sleep
    )
    await service.refresh()
    assert seen == [("analytics", {"latest": {"Pressure": 1.5}})]


async def test_odyssey_falls_back_to_polling(make_service, backend, odyssey_options, parking_sleep):
    service = make_service(odyssey_options)
    await service.start()
    await settle()
    assert backend.stream_opened == 1
    assert backend.status_calls == 1
    assert "physical_state.z" in service.keys()
    assert parking_sleep.calls == [1.0]
    await service.stop()


async def test_odyssey_stream_events_become_samples(make_service, backend, odyssey_options):
    backend.stream_error = None
    service = make_service(odyssey_options)
    await service.start()
    await backend.stream_queue.put({"layer": 7, "physical_state": {"z": 0.35}})
    await settle()
    assert service.latest("layer") == 7.0
    assert service.latest("physical_state.z") == 0.35
    assert backend.status_calls == 0
    await service.stop()


async def test_nanodlp_loop_waits_remaining_interval(make_service, nanodlp_options, parking_sleep):
    service = make_service(nanodlp_options, fast_hz=4)
    await service.start()
    await settle()
    assert parking_sleep.calls == [0.25]
    await service.stop()
