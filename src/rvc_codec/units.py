"""
rvc_codec.units

Engineering-unit conversions for RV-C data types (RV-C table 5.3).

The table is closed: every supported (unit, width) pair has an explicit
entry, and the specification loader rejects fields whose pair is missing, so
a conversion can never silently pass a raw value through.

Functions:
    - convert_unit: raw integer -> engineering value (or "n/a")
    - encode_unit: engineering value -> raw integer
    - celsius_to_fahrenheit: mirror conversion used for "deg c" fields
    - round_half_up: decimal rounding helper shared with the encoder
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Callable, NamedTuple, Union

from rvc_codec.exceptions import InvalidPayload

NOT_AVAILABLE = "n/a"

Number = Union[int, float]
EngineeringValue = Union[int, float, str]


class Unit(str, Enum):
    """Units understood by the codec, keyed by their spelling in the spec document."""

    PERCENT = "pct"
    DEG_C = "deg c"
    VOLTS = "v"
    AMPS = "a"
    HERTZ = "hz"
    SECONDS = "sec"
    BITMAP = "bitmap"

    @classmethod
    def parse(cls, text: str) -> "Unit":
        normalized = str(text).strip().lower()
        for unit in cls:
            if unit.value == normalized:
                return unit
        raise ValueError(f"Unknown unit '{text}'")


class FieldType(str, Enum):
    """Data types a field may declare. Bit-family types hold flag/enum codes."""

    UINT = "uint"
    UINT2 = "uint2"
    UINT4 = "uint4"
    UINT8 = "uint8"
    UINT16 = "uint16"
    UINT32 = "uint32"
    BIT = "bit"
    BIT2 = "bit2"
    BIT4 = "bit4"

    @classmethod
    def parse(cls, text: str) -> "FieldType":
        normalized = str(text).strip().lower()
        for field_type in cls:
            if field_type.value == normalized:
                return field_type
        raise ValueError(f"Unknown type '{text}'")

    @property
    def is_bit_family(self) -> bool:
        return self in (FieldType.BIT, FieldType.BIT2, FieldType.BIT4)


def round_half_up(value: Decimal, places: str = "1") -> Decimal:
    """Round `value` to the exponent of `places` ("1", "0.1", "0.01"), halves away from zero."""
    return value.quantize(Decimal(places), rounding=ROUND_HALF_UP)


def _as_number(value: Decimal) -> Number:
    if value == value.to_integral_value():
        return int(value)
    return float(value)


class Conversion(NamedTuple):
    """One row of the unit table."""

    decode: Callable[[int], EngineeringValue]
    encode: Callable[[Decimal], Decimal]
    has_sentinel: bool = True


def _scaled(factor: str, offset: str = "0", places: str = "0.1") -> Conversion:
    """A linear conversion raw * factor + offset, rounded to `places`."""
    f = Decimal(factor)
    o = Decimal(offset)
    return Conversion(
        decode=lambda raw: _as_number(round_half_up(Decimal(raw) * f + o, places)),
        encode=lambda value: (value - o) / f,
    )


_IDENTITY = Conversion(decode=lambda raw: raw, encode=lambda value: value)


def _seconds_from_raw(raw: int) -> int:
    # 241..250 count whole minutes starting at five
    if 240 < raw < 251:
        return (raw - 236) * 60
    return raw


def _seconds_to_raw(value: Decimal) -> Decimal:
    if Decimal(0) <= value <= Decimal(240):
        return value
    if Decimal(300) <= value <= Decimal(840):
        return round_half_up(value / 60) + 236
    raise InvalidPayload(f"Duration {value}s cannot be represented in an 8-bit seconds field")


UNIT_TABLE: dict[tuple[Unit, int], Conversion] = {
    (Unit.PERCENT, 8): Conversion(
        decode=lambda raw: _as_number(Decimal(raw) / 2),
        encode=lambda value: value * 2,
    ),
    (Unit.DEG_C, 8): Conversion(decode=lambda raw: raw - 40, encode=lambda value: value + 40),
    (Unit.DEG_C, 16): _scaled("0.03125", "-273"),
    (Unit.VOLTS, 8): _IDENTITY,
    (Unit.VOLTS, 16): _scaled("0.05"),
    (Unit.AMPS, 8): _IDENTITY,
    (Unit.AMPS, 16): _scaled("0.05", "-1600"),
    (Unit.AMPS, 32): _scaled("0.001", "-2000000", places="0.01"),
    (Unit.HERTZ, 8): _IDENTITY,
    (Unit.HERTZ, 16): Conversion(
        decode=lambda raw: _as_number(round_half_up(Decimal(raw) / 128, "0.1")),
        encode=lambda value: value * 128,
    ),
    (Unit.SECONDS, 8): Conversion(decode=_seconds_from_raw, encode=_seconds_to_raw),
    (Unit.SECONDS, 16): Conversion(decode=lambda raw: raw * 2, encode=lambda value: value / 2),
    (Unit.BITMAP, 8): Conversion(
        decode=lambda raw: format(raw, "08b"),
        encode=lambda value: value,
        has_sentinel=False,
    ),
}


def supports(unit: Unit, width: int) -> bool:
    return (unit, width) in UNIT_TABLE


def sentinel_for(width: int) -> int:
    """The all-ones "not available" raw value for a field `width` bits wide."""
    return (1 << width) - 1


def convert_unit(raw: int, unit: Unit, width: int) -> EngineeringValue:
    """
    Convert a raw field value to its engineering value.

    The all-ones raw value maps to "n/a" for every unit with a sentinel.
    """
    conversion = UNIT_TABLE[(unit, width)]
    if conversion.has_sentinel and raw == sentinel_for(width):
        return NOT_AVAILABLE
    return conversion.decode(raw)


def encode_unit(value: Decimal, unit: Unit, width: int) -> int:
    """
    Inverse of convert_unit for a numeric engineering value; rounds half-up to an integer.

    Raises:
        InvalidPayload: the value is too large to round at all.
    """
    conversion = UNIT_TABLE[(unit, width)]
    try:
        return int(round_half_up(conversion.encode(value)))
    except InvalidOperation as e:
        raise InvalidPayload(f"Value {value} is out of range for {unit.value}") from e


def celsius_to_fahrenheit(value: EngineeringValue) -> EngineeringValue:
    if value == NOT_AVAILABLE:
        return NOT_AVAILABLE
    fahrenheit = Decimal(str(value)) * 9 / 5 + 32
    return _as_number(round_half_up(fahrenheit, "0.1"))
