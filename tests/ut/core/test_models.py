import pytest

from rotonde.core.errors import InvalidPacketError
from rotonde.core.models.definition import Definition, DefinitionKind, merge_fields
from rotonde.core.models.packet import Packet, PacketType


@pytest.mark.ut
def test_definition_from_wire_keeps_extra_attributes():
    definition = Definition.from_dict({
        "identifier": "GAMEPAD_MOVE",
        "type": "action",
        "fields": [{"name": "axis", "type": "number", "units": ""}],
        "description": "stick moved",
    })

    assert definition.kind == DefinitionKind.action
    assert definition.field_names() == ["axis"]
    assert definition.to_dict() == {
        "identifier": "GAMEPAD_MOVE",
        "type": "action",
        "fields": [{"name": "axis", "type": "number", "units": ""}],
        "description": "stick moved",
    }


@pytest.mark.ut
def test_definition_without_fields_defaults_to_empty():
    definition = Definition.from_dict({"identifier": "PING", "type": "event"})
    assert definition.fields == []


@pytest.mark.ut
@pytest.mark.parametrize("data", [
    {"type": "event"},
    {"identifier": "X", "type": "signal"},
    {"identifier": "X", "type": "event", "fields": [{"label": "no name"}]},
    {"identifier": "X", "type": "event", "fields": "a,b"},
])
def test_definition_rejects_invalid_shapes(data):
    with pytest.raises(InvalidPacketError):
        Definition.from_dict(data)


@pytest.mark.ut
def test_merge_fields_dedups_by_name():
    merged = merge_fields(
        [{"name": "a", "v": 1}],
        [{"name": "a", "v": 2}, {"name": "b"}, {"name": "b", "v": 3}],
    )
    assert merged == [{"name": "a", "v": 1}, {"name": "b"}]


@pytest.mark.ut
def test_packet_to_dict_uses_wire_type():
    packet = Packet(type=PacketType.definition, payload={"identifier": "X"})
    assert packet.to_dict() == {"type": "def", "payload": {"identifier": "X"}}


@pytest.mark.ut
@pytest.mark.parametrize("data", [
    ["event", {}],
    {"payload": {}},
    {"type": "hello", "payload": {}},
    {"type": "event", "payload": "text"},
])
def test_packet_from_dict_rejects_malformed(data):
    with pytest.raises(InvalidPacketError):
        Packet.from_dict(data)
