"""
Unit tests for the can_processing module in the core_daemon.

These tests cover the core logic of processing CAN traffic:
- Decoding received frames with the shared codec and publishing the records.
- Tracking DGNs that have no decoder definition.
- Publishing the synthetic dimmer status and the correlated window shade status.
- Incrementing relevant Prometheus metrics.
- Encoding MQTT commands and queueing them for transmission.
"""

import asyncio
from unittest.mock import MagicMock, patch

import pytest
from can import Message

from core_daemon.can_manager import build_can_id
from core_daemon.can_processing import process_can_message, process_command_message
from core_daemon.metrics import DECODE_ERRORS, LOOKUP_MISSES, SUCCESSFUL_DECODES
from rvc_codec import InvalidPayload, UnknownMessageType


@pytest.fixture
def bridge(app_state):
    """A mocked MQTT bridge attached to the app state."""
    mock_bridge = MagicMock()
    mock_bridge.publish.return_value = True
    app_state.bridge = mock_bridge
    return mock_bridge


def frame(dgn, data, source_address=0x42, timestamp=1700000000.0):
    return Message(
        arbitration_id=build_can_id(dgn, 6, source_address),
        data=bytes.fromhex(data),
        is_extended_id=True,
        timestamp=timestamp,
    )


def published(bridge):
    return {c.args[0]: c for c in bridge.publish.call_args_list}


def test_known_frame_is_decoded_stored_and_published(app_state, bridge):
    before = SUCCESSFUL_DECODES._value.get()

    process_can_message(frame(0x1FFFD, "01780401D2983577"), "can0", app_state)

    topic = "RVC/DC_SOURCE_STATUS_1/1"
    record = app_state.latest_records[topic]
    assert record["dc voltage"] == 13
    assert record["timestamp"] == 1700000000.0
    bridge.publish.assert_called_once_with(topic, record, retain=False)
    assert SUCCESSFUL_DECODES._value.get() == before + 1


def test_missing_timestamp_uses_wall_clock(app_state, bridge):
    with patch("core_daemon.can_processing.time.time", return_value=123.0):
        process_can_message(frame(0x1FFFD, "01780401D2983577", timestamp=0.0), "can0", app_state)
    assert app_state.latest_records["RVC/DC_SOURCE_STATUS_1/1"]["timestamp"] == 123.0


def test_unknown_dgn_is_tracked(app_state, bridge):
    before = LOOKUP_MISSES._value.get()

    process_can_message(frame(0x12345, "0102030405060708"), "can0", app_state)
    process_can_message(frame(0x12345, "0807060504030201"), "can0", app_state)

    entry = app_state.unknown_dgns["12345"]
    assert entry.count == 2
    assert entry.last_data_hex == "0807060504030201"
    assert entry.arbitration_id_hex == "19234542"
    assert LOOKUP_MISSES._value.get() == before + 2
    assert "RVC/UNKNOWN-12345" in published(bridge)


def test_decode_error_is_counted_and_dropped(app_state, bridge):
    before = DECODE_ERRORS._value.get()
    with patch.object(app_state.codec, "decode", side_effect=InvalidPayload("bad")):
        process_can_message(frame(0x1FFFD, "01780401D2983577"), "can0", app_state)
    assert DECODE_ERRORS._value.get() == before + 1
    assert app_state.latest_records == {}
    bridge.publish.assert_not_called()


def test_driver_status_publishes_dimmer_and_shade_status(app_state, bridge):
    process_can_message(frame(0x1FE90, "0707FDFFFFFFFFFF"), "can0", app_state)

    calls = published(bridge)
    assert "RVC/DC_COMPONENT_DRIVER_STATUS_1" in calls

    dimmer = calls["RVC/DC_DIMMER_STATUS_3/7"]
    assert dimmer.args[1]["data"] == "07FFC8FCFF0504FF"
    assert dimmer.args[1]["timestamp"] == 1700000000.0

    shade = calls["RVC/WINDOW_SHADE_CONTROL_STATUS/7"]
    assert shade.kwargs["retain"] is True
    assert shade.args[1]["motor status"] == "01"
    assert app_state.correlator.snapshot()[7]["instance"] == 7


def test_dimmer_synthesis_can_be_disabled(app_state, bridge):
    app_state.feature_flags["dimmer_synth"] = False
    process_can_message(frame(0x1FE90, "0707FDFFFFFFFFFF"), "can0", app_state)
    assert "RVC/DC_DIMMER_STATUS_3/7" not in published(bridge)


def test_correlator_can_be_disabled(spec_table, canbus_config, bridge):
    from core_daemon.app_state import AppState

    state = AppState(
        spec_table,
        canbus_config=canbus_config,
        feature_flags={"mqtt": False, "window_shade_correlator": False, "dimmer_synth": False},
    )
    state.bridge = bridge
    process_can_message(frame(0x1FE90, "0707FDFFFFFFFFFF"), "can0", state)
    assert state.correlator is None
    assert list(published(bridge)) == ["RVC/DC_COMPONENT_DRIVER_STATUS_1"]


def test_malformed_driver_status_is_dropped(app_state, bridge, caplog):
    """An empty driver status frame has no driver_index; processing carries on."""
    process_can_message(frame(0x1FE95, ""), "can0", app_state)
    assert "RVC/DC_COMPONENT_DRIVER_STATUS_6" in published(bridge)
    assert app_state.correlator.snapshot() == {}
    assert "driver_index" in caplog.text


def test_processing_without_bridge(app_state):
    process_can_message(frame(0x1FFFD, "01780401D2983577"), "can0", app_state)
    assert "RVC/DC_SOURCE_STATUS_1/1" in app_state.latest_records


# --- process_command_message ---


@patch("core_daemon.can_processing.enqueue_can_message_threadsafe")
def test_command_is_encoded_and_queued(mock_enqueue, app_state):
    app_state.loop = MagicMock(spec=asyncio.AbstractEventLoop)

    data = process_command_message(
        "DC_DIMMER_COMMAND_2", {"desired level": 100, "command": "set level"}, 1, app_state
    )

    assert data == "01FFC800FF00FFFF"
    loop, msg, interface = mock_enqueue.call_args.args
    assert loop is app_state.loop
    assert interface == "can0"
    assert msg.arbitration_id == 0x19FEDBA0
    assert msg.data == bytes.fromhex(data)


@patch("core_daemon.can_processing.enqueue_can_message_threadsafe")
def test_command_uses_configured_addressing(mock_enqueue, app_state):
    app_state.loop = MagicMock(spec=asyncio.AbstractEventLoop)
    app_state.canbus_config["priority"] = 3
    app_state.canbus_config["source_address"] = 0xF9

    process_command_message("AUTOFILL_COMMAND", {"command": "on"}, None, app_state)

    msg = mock_enqueue.call_args.args[1]
    assert msg.arbitration_id == 0x0DFFB2F9
    assert msg.data == bytes.fromhex("FDFFFFFFFFFFFFFF")


@patch("core_daemon.can_processing.enqueue_can_message_threadsafe")
def test_unknown_command_target(mock_enqueue, app_state):
    app_state.loop = MagicMock(spec=asyncio.AbstractEventLoop)
    with pytest.raises(UnknownMessageType):
        process_command_message("NO_SUCH_MESSAGE", {}, None, app_state)
    mock_enqueue.assert_not_called()


@patch("core_daemon.can_processing.enqueue_can_message_threadsafe")
def test_invalid_command_payload(mock_enqueue, app_state):
    app_state.loop = MagicMock(spec=asyncio.AbstractEventLoop)
    with pytest.raises(InvalidPayload):
        process_command_message("DC_DIMMER_COMMAND_2", {"desired level": "bright"}, 1, app_state)
    mock_enqueue.assert_not_called()


def test_command_without_event_loop(app_state):
    with pytest.raises(RuntimeError):
        process_command_message("AUTOFILL_COMMAND", {"command": "on"}, None, app_state)


def test_command_without_interface(app_state):
    app_state.loop = MagicMock(spec=asyncio.AbstractEventLoop)
    app_state.canbus_config["channels"] = []
    with pytest.raises(RuntimeError):
        process_command_message("AUTOFILL_COMMAND", {"command": "on"}, None, app_state)
