"""
Tests for the Pydantic API models in `core_daemon.models`.
"""

import pytest
from pydantic import ValidationError

from core_daemon.models import (
    DecoderDefinitionModel,
    EncodeRequest,
    EncodeResponse,
    ParameterModel,
    RawMessageRequest,
    SpecInfo,
    UnknownDGNEntry,
)


def test_raw_message_request_requires_both_fields():
    assert RawMessageRequest(dgn="1FEDA", data="01FF").dgn == "1FEDA"
    with pytest.raises(ValidationError):
        RawMessageRequest(dgn="1FEDA")


def test_encode_request_defaults():
    request = EncodeRequest(target="AUTOFILL_COMMAND")
    assert request.fields == {}
    assert request.instance is None
    assert request.send is False


@pytest.mark.parametrize("instance", [-1, 256])
def test_encode_request_instance_range(instance):
    with pytest.raises(ValidationError):
        EncodeRequest(target="DC_DIMMER_COMMAND_2", instance=instance)


def test_encode_request_keeps_field_values():
    request = EncodeRequest(
        target="DC_DIMMER_COMMAND_2",
        fields={"desired level": 50, "command": "set level", "delay/duration": "n/a"},
        instance=1,
    )
    assert request.fields["delay/duration"] == "n/a"
    assert request.instance == 1


def test_encode_response_defaults():
    response = EncodeResponse(name="AUTOFILL_COMMAND", dgn="1FFB2", data="FDFFFFFFFFFFFFFF")
    assert response.sent is False
    assert response.arbitration_id is None


def test_decoder_definition_model():
    model = DecoderDefinitionModel(
        dgn="1FFB2",
        name="AUTOFILL_COMMAND",
        parameters=[
            ParameterModel(
                name="command", byte="0", bit="0-1", type="bit2", values={"0": "off", "1": "on"}
            )
        ],
    )
    dumped = model.model_dump()
    assert dumped["alias"] is None
    assert dumped["parameters"][0]["unit"] is None
    assert dumped["parameters"][0]["values"] == {"0": "off", "1": "on"}


def test_unknown_dgn_entry():
    entry = UnknownDGNEntry(
        dgn="12345",
        arbitration_id_hex="19234542",
        first_seen_timestamp=1.0,
        last_seen_timestamp=2.0,
        count=3,
        last_data_hex="0102",
    )
    assert entry.model_dump()["count"] == 3


def test_spec_info_is_reexported():
    from common.models import SpecInfo as CommonSpecInfo

    assert SpecInfo is CommonSpecInfo
