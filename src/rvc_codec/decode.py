"""
rvc_codec.decode

Decoding of RV-C payloads into named, human-readable records.

Functions:
    - normalize_dgn: Validates a DGN string and pads it to five hex digits
    - parse_payload: Parses a hex payload string into bytes
    - get_bytes: Slices a byte range, reporting out-of-range slices as None
    - get_bits: Extracts an inclusive bit range from a single byte
    - lookup_value_definition: Resolves a value against a field's value table
    - decode_message: Decodes one payload against the specification table

Notes:
    - Multi-byte fields are least-significant byte first (RV-C wire order).
    - Unrecognized DGNs and fields past the end of a short payload are not
      errors: the first yields an "UNKNOWN-<dgn>" record, the second is skipped.
"""

import logging
import re
from typing import Any, Dict, Mapping, Optional

from rvc_codec.exceptions import InvalidPayload
from rvc_codec.spec import FieldDefinition, SpecTable
from rvc_codec.units import FieldType, Unit, celsius_to_fahrenheit, convert_unit

logger = logging.getLogger(__name__)

UNDEFINED = "undefined"
DECODER_PENDING = "DECODER PENDING"

_HEX_DGN = re.compile(r"^[0-9A-Fa-f]{1,5}$")
_TWO_BIT_TYPES = (FieldType.BIT, FieldType.BIT2, FieldType.UINT2)
_FOUR_BIT_TYPES = (FieldType.BIT4, FieldType.UINT4)


def normalize_dgn(dgn: str) -> str:
    if not isinstance(dgn, str) or not _HEX_DGN.match(dgn.strip()):
        raise InvalidPayload(f"Invalid DGN '{dgn}'")
    return dgn.strip().upper().zfill(5)


def parse_payload(data: str) -> bytes:
    cleaned = re.sub(r"\s+", "", data or "")
    try:
        return bytes.fromhex(cleaned)
    except ValueError as e:
        raise InvalidPayload(f"Invalid hex payload '{data}': {e}") from e


def get_bytes(payload: bytes, start: int, end: int) -> Optional[bytes]:
    """Return payload[start..end] inclusive, or None when the range runs past the payload."""
    if end >= len(payload):
        return None
    return payload[start : end + 1]


def get_bits(byte_value: int, start_bit: int, end_bit: int) -> int:
    """Extract bits start_bit..end_bit (inclusive, bit 0 = LSB) from one byte."""
    length = end_bit - start_bit + 1
    return (byte_value >> start_bit) & ((1 << length) - 1)


def lookup_value_definition(values: Mapping[str, str], value: Any, field_type: FieldType) -> str:
    """
    Find the definition for `value` in a field's value table.

    Keys in spec documents are written in several styles ("1", "01", "0001",
    binary "10"), so after the direct key a fallback ladder is tried that
    depends on the field's type.
    """
    direct = values.get(str(value))
    if direct:
        return direct
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return UNDEFINED

    candidates = []
    if field_type in _TWO_BIT_TYPES:
        if field_type is not FieldType.BIT:
            candidates.append("%02d" % value)
        if value < 4:
            candidates.append(format(int(value), "02b"))
    elif field_type in _FOUR_BIT_TYPES:
        candidates.append("%04d" % value)
        if value < 16:
            candidates.append(format(int(value), "04b"))
    else:
        candidates.extend(["%02d" % value, "%04d" % value])
        if value < 4:
            candidates.append(format(int(value), "02b"))
        if value < 16:
            candidates.append(format(int(value), "04b"))

    for key in candidates:
        definition = values.get(key)
        if definition:
            return definition
    return UNDEFINED


def _decode_field(field_def: FieldDefinition, payload: bytes):
    sliced = get_bytes(payload, field_def.byte_start, field_def.byte_end)
    if sliced is None:
        return None
    if field_def.has_bits:
        raw = get_bits(sliced[0], field_def.bit_start, field_def.bit_end)
    else:
        raw = int.from_bytes(sliced, byteorder="little")
    if field_def.unit is not None:
        return convert_unit(raw, field_def.unit, field_def.width)
    return raw


def decode_message(table: SpecTable, dgn: str, data: str) -> Dict[str, Any]:
    """
    Decode `data` (hex) for message type `dgn` into a flat record.

    The record always starts with dgn, data and name. Each field adds its
    value, a "<name> definition" entry when it has a value table, and a
    "<name> F" mirror for Celsius temperatures.
    """
    dgn = normalize_dgn(dgn)
    payload = parse_payload(data)
    record: Dict[str, Any] = {
        "dgn": dgn,
        "data": payload.hex().upper(),
        "name": f"UNKNOWN-{dgn}",
    }

    decoder = table.resolve(dgn)
    if decoder is None:
        return record
    record["name"] = decoder.name

    fields = table.effective_fields(decoder)
    for field_def in fields:
        value = _decode_field(field_def, payload)
        if value is None:
            logger.debug(
                f"{decoder.name}: '{field_def.name}' lies beyond the {len(payload)}-byte payload"
            )
            continue

        record[field_def.name] = value
        if field_def.unit is Unit.DEG_C:
            record[f"{field_def.name} F"] = celsius_to_fahrenheit(value)
        if field_def.values is not None:
            record[f"{field_def.name} definition"] = lookup_value_definition(
                field_def.values, value, field_def.type
            )

    if not fields:
        record[DECODER_PENDING] = 1
    return record
