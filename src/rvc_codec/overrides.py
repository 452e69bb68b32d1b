"""
rvc_codec.overrides

Compatibility override table.

A few message types are rejected or misread by real devices when built with
the generic field encoder. For those DGNs the encoder applies a hand-verified
byte pattern after generic encoding. Overrides replace bytes, they never
merge with the generic result.

Each override receives the caller-supplied instance and the caller's field
values (keys lower-cased) and returns {byte position: byte value}.
"""

import logging
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional

from rvc_codec.exceptions import InvalidPayload
from rvc_codec.units import NOT_AVAILABLE, Unit, encode_unit

logger = logging.getLogger(__name__)

OverrideFunction = Callable[[Optional[int], Mapping[str, Any]], Dict[int, int]]

_ON_WORDS = ("on", "1", "01", "true")


def _is_on(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _ON_WORDS
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value == 1
    return False


def _instance_byte(instance: Optional[int], fields: Mapping[str, Any]) -> int:
    value = instance if instance is not None else fields.get("instance")
    try:
        inst = int(value)
    except (TypeError, ValueError) as e:
        raise InvalidPayload(f"An instance number is required, got {value!r}") from e
    if not 0 <= inst <= 0xFF:
        raise InvalidPayload(f"Instance {inst} is out of range")
    return inst


def autofill_command(instance: Optional[int], fields: Mapping[str, Any]) -> Dict[int, int]:
    """AUTOFILL_COMMAND: the pump only accepts FC (off) / FD (on) followed by FFs."""
    first = 0xFD if _is_on(fields.get("command")) else 0xFC
    return dict(enumerate([first] + [0xFF] * 7))


def dc_dimmer_command_2(instance: Optional[int], fields: Mapping[str, Any]) -> Dict[int, int]:
    """DC_DIMMER_COMMAND_2: group must be FF and interlock 00 or the load ignores the command."""
    return {1: 0xFF, 5: 0x00}


def thermostat_command_1(instance: Optional[int], fields: Mapping[str, Any]) -> Dict[int, int]:
    """
    THERMOSTAT_COMMAND_1: the furnace controller wants instance, mode and both
    setpoints in one frame; "off" is signalled by n/a setpoints.
    """
    inst = _instance_byte(instance, fields)
    setpoint = fields.get("setpoint")
    if setpoint is None:
        setpoint = fields.get("setpoint temp heat")

    if setpoint is None or str(setpoint).strip().lower() == NOT_AVAILABLE:
        mode = 0x00
        raw_setpoint = 0xFFFF
    else:
        try:
            celsius = Decimal(str(setpoint))
        except InvalidOperation as e:
            raise InvalidPayload(f"Invalid thermostat setpoint {setpoint!r}") from e
        if not celsius.is_finite():
            raise InvalidPayload(f"Invalid thermostat setpoint {setpoint!r}")
        mode = 0x02
        raw_setpoint = encode_unit(celsius, Unit.DEG_C, 16)
        if not 0 <= raw_setpoint < 0xFFFF:
            raise InvalidPayload(f"Thermostat setpoint {setpoint!r} is out of range")

    low, high = raw_setpoint & 0xFF, raw_setpoint >> 8
    return {0: inst, 1: mode, 2: 0xFF, 3: low, 4: high, 5: low, 6: high, 7: 0xFF}


OVERRIDES: Mapping[str, OverrideFunction] = MappingProxyType(
    {
        "1FFB2": autofill_command,
        "1FEDB": dc_dimmer_command_2,
        "1FEF9": thermostat_command_1,
    }
)


def apply_override(
    dgn: str,
    payload: bytearray,
    instance: Optional[int],
    fields: Mapping[str, Any],
) -> bool:
    """Apply the override for `dgn` to `payload` in place. Returns True when one applied."""
    override = OVERRIDES.get(dgn)
    if override is None:
        return False
    for pos, value in override(instance, fields).items():
        payload[pos] = value
    logger.debug(f"Applied compatibility override for DGN {dgn}: {payload.hex().upper()}")
    return True
