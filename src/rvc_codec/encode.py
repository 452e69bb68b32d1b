"""
rvc_codec.encode

Encoding of named field values into 8-byte RV-C payloads.

Steps, in order:
    1. every byte starts as 0xFF;
    2. each supplied field (names matched case-insensitively) is converted to
       its raw form and written into its byte or bit range, LSB first;
    3. formatting pass: unclaimed bytes become 0xFF and unclaimed bits inside
       partially claimed bytes become 1;
    4. the compatibility override for the DGN, if any, replaces bytes;
    5. validation pass: every byte no field claims is forced to 0xFF.

The validation pass is exposed on its own as validate_payload so raw,
caller-built payloads can be checked before they are sent.
"""

import logging
import re
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional, Union

from rvc_codec.decode import normalize_dgn, parse_payload
from rvc_codec.exceptions import InvalidPayload, UnknownMessageType
from rvc_codec.overrides import apply_override
from rvc_codec.spec import FieldDefinition, SpecTable, claimed_masks
from rvc_codec.units import NOT_AVAILABLE, Unit, encode_unit, round_half_up

logger = logging.getLogger(__name__)

PAYLOAD_LENGTH = 8

FieldValue = Union[int, float, Decimal, str]

STOP_COMMAND = 4

COMMAND_CODES: Mapping[str, int] = MappingProxyType(
    {
        "set level": 0,
        "on (duration)": 1,
        "on (delay)": 2,
        "on": 2,
        "off (delay)": 3,
        "off": 3,
        "stop": 4,
        "toggle": 5,
        "memory off": 6,
        "ramp brightness": 17,
        "ramp toggle": 18,
        "ramp up": 19,
        "ramp down": 20,
        "ramp down/up": 21,
        "reverse": 65,
        "toggle reverse": 69,
        "forward": 129,
        "toggle forward": 133,
    }
)

_BINARY = re.compile(r"^[01]+$")


def _to_decimal(value: Union[int, float, Decimal, str]) -> Optional[Decimal]:
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    return number if number.is_finite() else None


def _reverse_lookup(field_def: FieldDefinition, text: str) -> Optional[str]:
    wanted = text.lower()
    for key, definition in field_def.values.items():
        if definition.lower() == wanted:
            return key
    return None


def _key_to_raw(field_def: FieldDefinition, key: str) -> Optional[FieldValue]:
    """Value-table keys on bit fields are spelled in binary when they span the field width."""
    if field_def.has_bits and _BINARY.match(key) and len(key) == field_def.width:
        return int(key, 2)
    return _to_decimal(key)


def _check_range(field_def: FieldDefinition, raw: int) -> int:
    if not 0 <= raw <= field_def.sentinel:
        raise InvalidPayload(
            f"Value {raw} does not fit the {field_def.width}-bit field '{field_def.name}'"
        )
    return raw


def encode_value(field_def: FieldDefinition, value: FieldValue) -> int:
    """
    Convert one input value to the raw integer stored in the field.

    Raises:
        InvalidPayload: the value has the wrong shape or does not fit the field.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal, str)):
        raise InvalidPayload(
            f"Field '{field_def.name}' expects a number or string, got {type(value).__name__}"
        )

    if isinstance(value, str):
        text = value.strip()
        if text.lower() == NOT_AVAILABLE:
            return field_def.sentinel

        if field_def.values:
            key = _reverse_lookup(field_def, text)
            if key is not None:
                resolved = _key_to_raw(field_def, key)
                if isinstance(resolved, int):
                    return _check_range(field_def, resolved)
                if resolved is not None:
                    text = str(resolved)

        if _BINARY.match(text) and (field_def.type.is_bit_family or field_def.unit is Unit.BITMAP):
            return _check_range(field_def, int(text, 2))

        number = _to_decimal(text)
        if number is None:
            if "command" in field_def.name.lower():
                code = COMMAND_CODES.get(text.lower())
                if code is None:
                    logger.warning(
                        f"Unknown command '{text}' for '{field_def.name}', sending stop instead"
                    )
                    code = STOP_COMMAND
                return _check_range(field_def, code)
            raise InvalidPayload(f"Invalid value '{value}' for field '{field_def.name}'")
    else:
        number = _to_decimal(value)
        if number is None:
            raise InvalidPayload(f"Invalid value {value!r} for field '{field_def.name}'")

    if field_def.unit is not None:
        raw = encode_unit(number, field_def.unit, field_def.width)
    else:
        try:
            raw = int(round_half_up(number))
        except InvalidOperation as e:
            raise InvalidPayload(
                f"Value {value!r} is out of range for field '{field_def.name}'"
            ) from e
    return _check_range(field_def, raw)


def _write_field(payload: bytearray, field_def: FieldDefinition, raw: int) -> None:
    if field_def.has_bits:
        mask = field_def.sentinel << field_def.bit_start
        pos = field_def.byte_start
        payload[pos] = (payload[pos] & ~mask & 0xFF) | ((raw << field_def.bit_start) & mask)
    elif field_def.byte_length > 1:
        payload[field_def.byte_start : field_def.byte_end + 1] = raw.to_bytes(
            field_def.byte_length, byteorder="little"
        )
    else:
        payload[field_def.byte_start] = raw


def apply_formatting(fields: Iterable[FieldDefinition], payload: bytearray) -> bytearray:
    """Force unclaimed bytes to 0xFF and unclaimed bits of partially claimed bytes to 1."""
    masks = claimed_masks(fields)
    for pos in range(PAYLOAD_LENGTH):
        mask = masks.get(pos, 0)
        payload[pos] = (payload[pos] & mask) | (~mask & 0xFF)
    return payload


def build_data_packet(fields: Iterable[FieldDefinition], values: Mapping[str, Any]) -> bytearray:
    """Generic encoding plus the formatting pass, without overrides or validation."""
    fields = tuple(fields)
    supplied = {str(name).lower(): value for name, value in values.items()}
    payload = bytearray([0xFF] * PAYLOAD_LENGTH)
    for field_def in fields:
        key = field_def.name.lower()
        if key not in supplied:
            continue
        _write_field(payload, field_def, encode_value(field_def, supplied[key]))
    return apply_formatting(fields, payload)


def _validate(fields: Iterable[FieldDefinition], payload: bytearray) -> bytearray:
    masks = claimed_masks(fields)
    for pos in range(PAYLOAD_LENGTH):
        if pos not in masks:
            payload[pos] = 0xFF
    return payload


def validate_payload(table: SpecTable, dgn: str, data: str) -> str:
    """
    Standalone validation pass over a hex payload.

    Pads short payloads with FF to eight bytes and forces every byte that no
    field claims to FF. DGNs without a field list are returned padded but
    otherwise unchanged. Idempotent.
    """
    payload = bytearray(parse_payload(data))
    if len(payload) > PAYLOAD_LENGTH:
        raise InvalidPayload(f"Payload '{data}' is longer than {PAYLOAD_LENGTH} bytes")
    payload.extend([0xFF] * (PAYLOAD_LENGTH - len(payload)))

    decoder = table.resolve(normalize_dgn(dgn))
    fields = table.effective_fields(decoder) if decoder is not None else ()
    if fields:
        _validate(fields, payload)
    return payload.hex().upper()


def encode_message(
    table: SpecTable,
    target: str,
    fields_in: Mapping[str, Any],
    instance: Optional[int] = None,
) -> str:
    """
    Build the 16-hex-character payload for `target` (display name or DGN key).

    Raises:
        UnknownMessageType: `target` has no decoder definition.
        InvalidPayload: `fields_in` is not a mapping or holds an invalid value.
    """
    decoder = table.lookup(target) if isinstance(target, str) else None
    if decoder is None:
        raise UnknownMessageType(str(target))
    if not isinstance(fields_in, Mapping):
        raise InvalidPayload(f"Fields for {decoder.name} must be a JSON object")

    values = {str(name).lower(): value for name, value in fields_in.items()}
    if instance is not None:
        values["instance"] = instance

    fields = table.effective_fields(decoder)
    payload = build_data_packet(fields, values)
    apply_override(decoder.dgn, payload, instance, values)
    _validate(fields, payload)

    data = payload.hex().upper()
    logger.debug(f"Encoded {decoder.name} ({decoder.dgn}) {values} -> {data}")
    return data
