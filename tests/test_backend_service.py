import pytest

from orion.backends.nanodlp.client import NanoDlpClient
from orion.backends.nanodlp.simulated import SimulatedNanoDlpClient
from orion.backends.odyssey import OdysseyClient
from orion.backends.service import BackendService, create_backend_client
from orion.core.config import AppConfig, DeveloperConfig, RuntimeOptions
from orion.core.exceptions import UnsupportedCapabilityError

from tests.conftest import FakeBackend


@pytest.mark.parametrize(
    ("config", "expected"),
    [
        (AppConfig(), OdysseyClient),
        (AppConfig(backend="nanodlp"), NanoDlpClient),
        (AppConfig(backend=" NanoDLP "), NanoDlpClient),
        (AppConfig(backend="odyssey", developer=DeveloperConfig(simulated=True)), SimulatedNanoDlpClient),
        (AppConfig(backend="nanodlp", developer=DeveloperConfig(simulated=True)), SimulatedNanoDlpClient),
    ],
)
def test_selector_picks_adapter(config, expected):
    client = create_backend_client(config, RuntimeOptions.from_config(config))
    assert isinstance(client, expected)


def test_simulator_counts_as_nanodlp_mode():
    service = BackendService.from_config(AppConfig(developer=DeveloperConfig(simulated=True)))
    assert service.name == "simulated"
    assert service.is_nanodlp_mode
    assert service.options.simulated


def test_odyssey_mode_is_not_nanodlp():
    service = BackendService.from_config(AppConfig())
    assert service.name == "odyssey"
    assert not service.is_nanodlp_mode


async def test_forwards_calls_to_client(backend):
    service = BackendService(backend, RuntimeOptions())
    assert (await service.get_status())["status"] == "Idle"
    await service.pause_print()
    await service.cancel_print()
    assert backend.calls == ["pause", "cancel"]
    assert await service.get_backend_version() == "1.2.3"
    assert await service.get_analytic_value(6) == 1.5


async def test_optional_capabilities_default_to_unsupported():
    service = BackendService(FakeBackend(), RuntimeOptions())
    assert await service.can_move_to_top() is False
    with pytest.raises(UnsupportedCapabilityError):
        await service.move_to_top()
    with pytest.raises(UnsupportedCapabilityError):
        await service.manual_cure(True)
    with pytest.raises(UnsupportedCapabilityError):
        await service.delete_file("Local", "a.zip")
