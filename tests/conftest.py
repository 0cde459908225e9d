import pytest
import yaml

from rotonde.core.client import RotondeClient
from rotonde.infra.json_serializer import JsonSerializer
from tests.fake.fake_transport import FakeTransport, FakeTransportFactory


@pytest.fixture
def serializer():
    return JsonSerializer()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def transport_factory():
    return FakeTransportFactory()


@pytest.fixture
def client(transport_factory, serializer):
    return RotondeClient(
        url="ws://rotonde.test:4224/",
        transport_factory=transport_factory,
        serializer=serializer,
    )


@pytest.fixture
def connected(client, transport_factory):
    """A client whose channel is open, with the replay packets cleared."""
    client.connect()
    transport_factory.current.fire_open()
    transport_factory.current.clear()
    return client


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    def write(data: dict):
        file = tmp_path / "rotonde.yaml"
        file.write_text(yaml.dump(data))
        monkeypatch.setenv("TEST_ROTONDECONFIG", str(file))
        return file

    return write
