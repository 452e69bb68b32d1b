"""
Window shade status correlation.

Shade motors on these coaches are driven by generic DC component drivers and
never send WINDOW_SHADE_CONTROL_STATUS themselves. This module joins the four
DC_COMPONENT_DRIVER_STATUS streams for each driver (keyed by driver_index)
into one composite WINDOW_SHADE_CONTROL_STATUS record, so clients that only
understand the shade status message keep working.

This module is responsible for:
- Keeping the latest record of each driver status stream per driver_index.
- Recomputing the best-effort composite after every accepted update, with
  fields from streams not yet seen left at their "unavailable" codes.
- Publishing the composite (retained) only when it differs from the last
  published one, ignoring the timestamp.
- Building the synthetic DC_DIMMER_STATUS_3 record for a driver output status.
"""

import copy
import json
import logging
import threading
import time
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional

from core_daemon.metrics import CORRELATION_ERRORS, CORRELATOR_PUBLISHES
from rvc_codec.exceptions import MalformedCorrelationInput
from rvc_codec.units import NOT_AVAILABLE

logger = logging.getLogger(__name__)

STATUS_1 = "DC_COMPONENT_DRIVER_STATUS_1"
STATUS_2 = "DC_COMPONENT_DRIVER_STATUS_2"
STATUS_4 = "DC_COMPONENT_DRIVER_STATUS_4"
STATUS_6 = "DC_COMPONENT_DRIVER_STATUS_6"
DRIVER_STATUS_NAMES = (STATUS_1, STATUS_2, STATUS_4, STATUS_6)

RESERVED_INSTANCE = 255
COMPOSITE_NAME = "WINDOW_SHADE_CONTROL_STATUS"
COMPOSITE_DGN = "1FEDE"

PublishFunction = Callable[[str, Mapping[str, Any], bool], Any]

DEFAULT_COMPOSITE: Mapping[str, Any] = MappingProxyType(
    {
        "instance": RESERVED_INSTANCE,
        "group": "01111101",
        "motor duty": 255,
        "lock status": "11",
        "lock status definition": "lock command not supported",
        "motor status": "11",
        "motor status definition": "motor status unavailable",
        "forward status": "11",
        "forward status definition": "forward status unavailable",
        "reverse status": "11",
        "reverse status definition": "reverse status unavailable",
        "duration": 255,
        "last command": 4,
        "last command definition": "stop",
        "command": 4,
        "overcurrent status": "11",
        "overcurrent status definition": "overcurrent status unavailable",
        "override status": "11",
        "override status definition": "override status unavailable",
        "disable1 status": "11",
        "disable1 status definition": "disable1 status unavailable",
        "disable2 status": "11",
        "disable2 status definition": "disable2 status unavailable",
        "name": COMPOSITE_NAME,
        "dgn": COMPOSITE_DGN,
        "data": "",
    }
)

# driver_direction definition -> (forward status, reverse status, last command, definition)
_DIRECTIONS = {
    "forward": ("01", "00", 129, "forward"),
    "reverse": ("00", "01", 65, "reverse"),
    "toggle_forward": ("01", "00", 133, "toggle forward"),
}
_NOT_MOVING = ("00", "00", 4, "stop")

_STATUS_WORDS = {"00": "inactive", "01": "active"}


def _driver_index(record: Mapping[str, Any]) -> int:
    value = record.get("driver_index")
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedCorrelationInput(
            f"{record.get('name')} record has no usable driver_index: {value!r}"
        )
    return value


def _unavailable_to_sentinel(value: Any) -> Any:
    return 255 if value is None or value == NOT_AVAILABLE else value


def _overlay_output_status(composite: Dict[str, Any], status1: Mapping[str, Any]) -> None:
    definition = status1.get("output_status definition")
    if definition == "on":
        composite["motor status"] = "01"
    elif definition == "off":
        composite["motor status"] = "00"
    else:
        return
    composite["motor status definition"] = _STATUS_WORDS[composite["motor status"]]


def _overlay_fault_status(composite: Dict[str, Any], status2: Mapping[str, Any]) -> None:
    definition = status2.get("undercurrent definition")
    if definition is None:
        return
    if definition == "normal":
        composite["overcurrent status"] = "00"
        composite["overcurrent status definition"] = "not in overcurrent"
    elif definition == "undercurrent_condition":
        composite["overcurrent status"] = "01"
        composite["overcurrent status definition"] = "has drawn overcurrent"
    else:
        composite["overcurrent status"] = "11"
        composite["overcurrent status definition"] = "overcurrent status unavailable"


def _overlay_drive_status(composite: Dict[str, Any], status6: Mapping[str, Any]) -> None:
    composite["motor duty"] = _unavailable_to_sentinel(status6.get("pwm_duty"))

    lock = status6.get("lock_status definition")
    if lock is not None:
        if lock in ("unlocked", "not_locked"):
            composite["lock status"], composite["lock status definition"] = "00", "unlocked"
        elif lock == "locked":
            composite["lock status"], composite["lock status definition"] = "01", "locked"
        else:
            composite["lock status"] = "11"
            composite["lock status definition"] = "lock command not supported"

    direction = status6.get("driver_direction definition")
    if direction is not None:
        forward, reverse, command, command_definition = _DIRECTIONS.get(direction, _NOT_MOVING)
        composite["forward status"] = forward
        composite["forward status definition"] = _STATUS_WORDS[forward]
        composite["reverse status"] = reverse
        composite["reverse status definition"] = _STATUS_WORDS[reverse]
        composite["last command"] = command
        composite["last command definition"] = command_definition

    if "duration_remaining" in status6:
        composite["duration"] = _unavailable_to_sentinel(status6["duration_remaining"])

    override = status6.get("override_input definition")
    if override is not None:
        if override == "inactive":
            composite["override status"] = "00"
            composite["override status definition"] = "external override inactive"
        elif override == "active":
            composite["override status"] = "01"
            composite["override status definition"] = "external override active"
        else:
            composite["override status"] = "11"
            composite["override status definition"] = "override status unavailable"

    for disable in ("disable1 status", "disable2 status"):
        composite[disable] = "00"
        composite[f"{disable} definition"] = "inactive"

    if status6.get("data") is not None:
        composite["data"] = status6["data"]


def build_composite(driver_index: int, streams: Mapping[str, Mapping[str, Any]]) -> Dict[str, Any]:
    """
    Assemble the WINDOW_SHADE_CONTROL_STATUS record for one driver from the
    latest record of each stream seen so far. The result has no timestamp.
    """
    composite = dict(DEFAULT_COMPOSITE)

    status1 = streams.get(STATUS_1)
    if status1 is not None:
        _overlay_output_status(composite, status1)
        device_instance = status1.get("device_instance")
        if isinstance(device_instance, int) and not isinstance(device_instance, bool):
            composite["instance"] = device_instance

    status2 = streams.get(STATUS_2)
    if status2 is not None:
        _overlay_fault_status(composite, status2)

    status6 = streams.get(STATUS_6)
    if status6 is not None:
        _overlay_drive_status(composite, status6)

    # STATUS_4 (on time, cycle count) has no counterpart in the shade status.

    if composite["instance"] == RESERVED_INSTANCE:
        composite["instance"] = driver_index
    composite["command"] = composite["last command"]
    return composite


class WindowShadeCorrelator:
    """
    Joins DC_COMPONENT_DRIVER_STATUS_1/2/4/6 records per driver_index into
    WINDOW_SHADE_CONTROL_STATUS records.

    Updates for the same driver are serialized by a per-driver lock; updates
    for different drivers proceed independently.
    """

    def __init__(
        self,
        publish: PublishFunction,
        clock: Callable[[], float] = time.time,
        topic_base: str = f"RVC/{COMPOSITE_NAME}",
    ):
        self._publish = publish
        self._clock = clock
        self.topic_base = topic_base
        self._streams: Dict[int, Dict[str, Dict[str, Any]]] = {}
        self._baselines: Dict[int, str] = {}
        self._published: Dict[int, Dict[str, Any]] = {}
        self._locks: Dict[int, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, driver_index: int) -> threading.Lock:
        with self._registry_lock:
            return self._locks.setdefault(driver_index, threading.Lock())

    def update(self, record: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Accept one decoded record.

        Records of other message types are ignored. Returns the composite when
        one was published, otherwise None.

        Raises:
            MalformedCorrelationInput: the record carries no integer driver_index.
        """
        name = record.get("name")
        if name not in DRIVER_STATUS_NAMES:
            return None
        try:
            driver_index = _driver_index(record)
        except MalformedCorrelationInput:
            CORRELATION_ERRORS.inc()
            raise

        with self._lock_for(driver_index):
            streams = self._streams.setdefault(driver_index, {})
            streams[name] = copy.deepcopy(dict(record))
            logger.debug(f"Driver {driver_index}: stored {name}, have {sorted(streams)}")

            composite = build_composite(driver_index, streams)
            if driver_index == RESERVED_INSTANCE or composite["instance"] == RESERVED_INSTANCE:
                logger.debug(f"Not publishing shade status for reserved instance {driver_index}")
                return None

            comparison = json.dumps(composite, sort_keys=True)
            if self._baselines.get(driver_index) == comparison:
                return None

            composite["timestamp"] = round(self._clock(), 6)
            topic = f"{self.topic_base}/{composite['instance']}"
            self._publish(topic, composite, True)
            self._baselines[driver_index] = comparison
            self._published[driver_index] = composite
            CORRELATOR_PUBLISHES.inc()
            logger.info(f"Published {COMPOSITE_NAME} for driver {driver_index} to {topic}")
            return composite

    def snapshot(self) -> Dict[int, Dict[str, Any]]:
        """Last published composite per driver_index."""
        with self._registry_lock:
            keys = list(self._published)
        result = {}
        for driver_index in keys:
            with self._lock_for(driver_index):
                result[driver_index] = copy.deepcopy(self._published[driver_index])
        return result


def build_synthetic_dimmer_data(instance: int, brightness: int, is_on: bool) -> str:
    brightness = max(0, min(100, brightness))
    scaled = min(int(brightness * 2), 255)
    return bytes(
        [instance & 0xFF, 0xFF, scaled, 0xFC, 0xFF, 0x05, 0x04 if is_on else 0x00, 0xFF]
    ).hex().upper()


def synthesize_dimmer_status(record: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Build a DC_DIMMER_STATUS_3 record from a DC_COMPONENT_DRIVER_STATUS_1
    record, for dashboards that show driver outputs as dimmable loads.

    Returns None for any other record or when driver_index / output_status
    are not numeric.
    """
    if record.get("name") != STATUS_1:
        return None
    driver_index = record.get("driver_index")
    output_status = record.get("output_status")
    for value in (driver_index, output_status):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None

    instance = int(driver_index) & 0xFF
    is_on = int(output_status) == 1
    brightness = 100 if is_on else 0
    return {
        "dgn": "1FEDA",
        "data": build_synthetic_dimmer_data(instance, brightness, is_on),
        "name": "DC_DIMMER_STATUS_3",
        "instance": instance,
        "group": "11111111",
        "operating status (brightness)": brightness,
        "lock status": "00",
        "lock status definition": "load is unlocked",
        "overcurrent status": "11",
        "overcurrent status definition": "overcurrent status is unavailable or not supported",
        "override status": "11",
        "override status definition": "override status is unavailable or not supported",
        "enable status": "11",
        "enable status definition": "enable status is unavailable or not supported",
        "interlock status": "00",
        "interlock status definition": "interlock command is not active",
        "delay/duration": 255,
        "last command": 5,
        "last command definition": "toggle",
        "load status": "01" if is_on else "00",
        "load status definition": (
            "operating status is non-zero or flashing" if is_on else "operating status is zero"
        ),
        "timestamp": record.get("timestamp"),
    }
