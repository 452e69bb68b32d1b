"""
Unit tests for rvc_codec.encode.

These tests cover:
- Encoding named values into 8-byte payloads, LSB first, with case-insensitive
  field names and an explicit instance taking precedence.
- Value-table reverse lookup, binary strings, the command-name table and its
  fallback to "stop".
- The "n/a" sentinel and decode(encode(x)) round trips for every unit.
- The coverage and bit-isolation invariants of the formatting and
  validation passes, and validation idempotence.
- Errors for unknown targets and malformed values.
"""

import logging
from decimal import Decimal

import pytest

from rvc_codec import (
    COMMAND_CODES,
    InvalidPayload,
    OVERRIDES,
    UnknownMessageType,
    build_data_packet,
    decode_message,
    encode_message,
    encode_value,
    validate_payload,
)


def field(spec_table, dgn, name):
    decoder = spec_table.get(dgn)
    return next(f for f in spec_table.effective_fields(decoder) if f.name == name)


def test_encode_window_shade_command(spec_table):
    data = encode_message(
        spec_table,
        "WINDOW_SHADE_CONTROL_COMMAND",
        {"instance": 3, "motor duty": 100, "command": "forward", "duration": 30},
    )
    # interlock is not supplied, so its bits stay 11 and the rest of byte 5 is 1s
    assert data == "03FFC8811EFFFFFF"


def test_encode_by_dgn_key(spec_table):
    by_name = encode_message(spec_table, "WINDOW_SHADE_CONTROL_COMMAND", {"instance": 3})
    by_dgn = encode_message(spec_table, "1fedf", {"instance": 3})
    assert by_name == by_dgn == "03FFFFFFFFFFFFFF"


def test_field_names_match_case_insensitively(spec_table):
    data = encode_message(spec_table, "WINDOW_SHADE_CONTROL_COMMAND", {"Motor Duty": 50})
    assert data[4:6] == "64"


def test_explicit_instance_wins(spec_table):
    data = encode_message(
        spec_table, "WINDOW_SHADE_CONTROL_COMMAND", {"instance": 2}, instance=5
    )
    assert data[:2] == "05"


def test_command_names(spec_table):
    command = field(spec_table, "1FEDF", "command")
    assert encode_value(command, "forward") == 129
    assert encode_value(command, "Toggle Reverse") == 69
    assert encode_value(command, "133") == 133
    assert encode_value(command, 4) == 4


def test_command_table_covers_fields_without_that_value(spec_table):
    """Names missing from the field's value table still resolve through the command table."""
    command = field(spec_table, "1FEDF", "command")
    assert encode_value(command, "ramp up") == COMMAND_CODES["ramp up"] == 19


def test_unknown_command_falls_back_to_stop(spec_table, caplog):
    with caplog.at_level(logging.WARNING, logger="rvc_codec.encode"):
        data = encode_message(
            spec_table, "WINDOW_SHADE_CONTROL_COMMAND", {"instance": 3, "command": "wiggle"}
        )
    assert data == "03FFFF04FFFFFFFF"
    assert "wiggle" in caplog.text


def test_non_numeric_value_for_other_fields_is_invalid(spec_table):
    with pytest.raises(InvalidPayload):
        encode_message(spec_table, "DC_SOURCE_STATUS_1", {"dc voltage": "lots"})


@pytest.mark.parametrize("value", [True, None, [1], {"a": 1}])
def test_wrong_value_shape_is_invalid(spec_table, value):
    with pytest.raises(InvalidPayload):
        encode_message(spec_table, "DC_SOURCE_STATUS_1", {"instance": value})


@pytest.mark.parametrize("value", [float("nan"), "inf", -1, 256])
def test_out_of_range_values_are_invalid(spec_table, value):
    with pytest.raises(InvalidPayload):
        encode_message(spec_table, "DC_SOURCE_STATUS_1", {"instance": value})


def test_value_too_large_after_conversion(spec_table):
    with pytest.raises(InvalidPayload):
        encode_message(spec_table, "WINDOW_SHADE_CONTROL_COMMAND", {"motor duty": 200})


@pytest.mark.parametrize(
    "name, fields",
    [
        ("DC_SOURCE_STATUS_1", {"instance": 1e30}),
        ("DC_SOURCE_STATUS_1", {"instance": "1e30"}),
        ("DC_SOURCE_STATUS_1", {"instance": Decimal("1e30")}),
        ("DC_SOURCE_STATUS_1", {"instance": 1, "dc voltage": 1e30}),
        ("WINDOW_SHADE_CONTROL_COMMAND", {"instance": 1, "motor duty": "1e30"}),
    ],
)
def test_values_too_large_to_round_are_invalid(spec_table, name, fields):
    with pytest.raises(InvalidPayload):
        encode_message(spec_table, name, fields)


def test_unknown_target(spec_table):
    with pytest.raises(UnknownMessageType) as excinfo:
        encode_message(spec_table, "NO_SUCH_MESSAGE", {})
    assert excinfo.value.target == "NO_SUCH_MESSAGE"


def test_fields_must_be_a_mapping(spec_table):
    with pytest.raises(InvalidPayload):
        encode_message(spec_table, "DC_SOURCE_STATUS_1", ["instance", 1])


def test_value_table_reverse_lookup(spec_table):
    lock = field(spec_table, "1FE95", "lock_status")
    direction = field(spec_table, "1FE95", "driver_direction")
    priority = field(spec_table, "1FFFD", "device priority")
    assert encode_value(lock, "locked") == 1
    assert encode_value(direction, "toggle_forward") == 2
    assert encode_value(priority, "Alternator") == 60


def test_binary_strings_for_bit_and_bitmap_fields(spec_table):
    group = field(spec_table, "1FEDF", "group")
    direction = field(spec_table, "1FE95", "driver_direction")
    assert encode_value(group, "01111101") == 0x7D
    assert encode_value(direction, "10") == 2


@pytest.mark.parametrize(
    "dgn, name, sentinel",
    [
        ("1FFFD", "dc voltage", 0xFFFF),
        ("1FFFD", "dc current", 0xFFFFFFFF),
        ("1FEDF", "motor duty", 0xFF),
        ("1FE95", "lock_status", 0x3),
        ("1FEF9", "operating mode", 0xF),
    ],
)
def test_not_available_encodes_all_ones(spec_table, dgn, name, sentinel):
    assert encode_value(field(spec_table, dgn, name), "n/a") == sentinel
    assert encode_value(field(spec_table, dgn, name), "N/A") == sentinel


def test_not_available_round_trips_through_decode(spec_table):
    data = encode_message(
        spec_table, "DC_SOURCE_STATUS_1", {"instance": 1, "dc voltage": "n/a", "dc current": 5}
    )
    record = decode_message(spec_table, "1FFFD", data)
    assert record["dc voltage"] == "n/a"
    assert record["dc current"] == 5


@pytest.mark.parametrize(
    "dgn, name, value",
    [
        ("1FEDF", "motor duty", 50.5),
        ("1FEDF", "duration", 300),
        ("1FEDF", "duration", 42),
        ("1FFFD", "dc voltage", 13.5),
        ("1FFFD", "dc current", -12.34),
        ("1FFFD", "dc current", 150),
        ("1FE90", "output_current", -3.5),
        ("1FE91", "driver_temperature", 21.5),
        ("1FE91", "driver_temperature", -10),
        ("1FE95", "duration_remaining", 840),
    ],
)
def test_round_trip(spec_table, dgn, name, value):
    """decode(encode(value)) returns the value for every unit in use."""
    fields = spec_table.effective_fields(spec_table.get(dgn))
    payload = build_data_packet(fields, {name: value})
    record = decode_message(spec_table, dgn, payload.hex())
    assert record[name] == value


def test_decimal_and_string_numbers_are_accepted(spec_table):
    voltage = field(spec_table, "1FFFD", "dc voltage")
    assert encode_value(voltage, Decimal("13.5")) == 270
    assert encode_value(voltage, "13.5") == 270
    assert encode_value(voltage, 13.52) == 270


def test_unclaimed_bytes_are_ff_for_every_definition(spec_table):
    """After encode, every byte no field claims is FF, for every DGN in the table."""
    for dgn, decoder in spec_table.decoders.items():
        if decoder.dgn_range is not None:
            continue
        data = encode_message(spec_table, dgn, {"instance": 1}, instance=1)
        payload = bytes.fromhex(data)
        assert len(payload) == 8
        masks = spec_table.claimed_masks(decoder)
        for pos in range(8):
            if pos not in masks:
                assert payload[pos] == 0xFF, f"{decoder.name} byte {pos}"
            elif dgn not in OVERRIDES:
                unclaimed = ~masks[pos] & 0xFF
                assert payload[pos] & unclaimed == unclaimed, f"{decoder.name} byte {pos}"


def test_bit_fields_sharing_a_byte_are_isolated(spec_table):
    lock_only = encode_message(spec_table, "1FE95", {"lock_status": "locked"})
    direction_only = encode_message(spec_table, "1FE95", {"driver_direction": "reverse"})
    both = encode_message(
        spec_table, "1FE95", {"lock_status": "locked", "driver_direction": "reverse"}
    )
    lock_byte = bytes.fromhex(lock_only)[2]
    direction_byte = bytes.fromhex(direction_only)[2]
    both_byte = bytes.fromhex(both)[2]

    assert lock_byte == 0xFD
    assert direction_byte == 0xF7
    assert both_byte == 0xF5
    assert both_byte & 0x03 == lock_byte & 0x03
    assert both_byte & 0x0C == direction_byte & 0x0C
    assert both_byte & 0xF0 == 0xF0


def test_absent_field_differs_from_zero_field(spec_table):
    absent = encode_message(spec_table, "1FE95", {})
    zero = encode_message(spec_table, "1FE95", {"lock_status": 0})
    assert bytes.fromhex(absent)[2] == 0xFF
    assert bytes.fromhex(zero)[2] == 0xFC


def test_validate_forces_unclaimed_bytes(spec_table):
    # AUTOFILL_COMMAND claims only byte 0
    assert validate_payload(spec_table, "1FFB2", "0102030405060708") == "01FFFFFFFFFFFFFF"


def test_validate_pads_short_payloads(spec_table):
    assert validate_payload(spec_table, "1FFB2", "FD") == "FDFFFFFFFFFFFFFF"


def test_validate_leaves_unknown_and_pending_dgns_alone(spec_table):
    assert validate_payload(spec_table, "12345", "0102030405060708") == "0102030405060708"
    assert validate_payload(spec_table, "1FFFF", "01020304") == "01020304FFFFFFFF"


def test_validate_is_idempotent(spec_table):
    for dgn in spec_table:
        once = validate_payload(spec_table, dgn, "0123456789ABCDEF")
        assert validate_payload(spec_table, dgn, once) == once


def test_validate_rejects_long_payloads(spec_table):
    with pytest.raises(InvalidPayload):
        validate_payload(spec_table, "1FFB2", "010203040506070809")


def test_command_codes_table():
    assert COMMAND_CODES["stop"] == 4
    assert COMMAND_CODES["forward"] == 129
    assert COMMAND_CODES["toggle reverse"] == 69
    with pytest.raises(TypeError):
        COMMAND_CODES["stop"] = 5
