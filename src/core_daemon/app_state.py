"""
Manages the in-memory application state for the rvc2mqtt daemon.

The state is an explicitly constructed AppState object created once at startup
and handed to the CAN listeners, the MQTT bridge and the API routers. It holds
the immutable specification table, the codec built on it, the window shade
correlator, the most recent decoded record per topic and the DGNs seen on the
bus without a decoder definition.
"""

import logging
import sys
import threading
import time
from typing import Any, Dict, Mapping, Optional

from fastapi import Request

from core_daemon.config import (
    get_actual_paths,
    get_canbus_config,
    get_feature_flags,
    get_mqtt_config,
)
from core_daemon.correlator import COMPOSITE_NAME, WindowShadeCorrelator
from core_daemon.metrics import MQTT_PUBLISH_ERRORS, UNKNOWN_DGN_GAUGE
from core_daemon.models import UnknownDGNEntry
from rvc_codec import RVCCodec, SpecIntegrityDefect, SpecTable, load_spec_table

logger = logging.getLogger(__name__)


def record_topic(record: Mapping[str, Any], prefix: str = "RVC") -> str:
    """Topic for a decoded record: <prefix>/<name>[/<instance>]."""
    topic = f"{prefix}/{record.get('name')}"
    if record.get("instance") is not None:
        topic += f"/{record['instance']}"
    return topic


class AppState:
    """Shared state of one running daemon."""

    def __init__(
        self,
        spec_table: SpecTable,
        canbus_config: Optional[Dict[str, Any]] = None,
        feature_flags: Optional[Dict[str, bool]] = None,
        topic_prefix: str = "RVC",
    ):
        self.spec_table = spec_table
        self.codec = RVCCodec(spec_table)
        self.canbus_config = canbus_config if canbus_config is not None else get_canbus_config()
        self.feature_flags = feature_flags if feature_flags is not None else get_feature_flags()
        self.topic_prefix = topic_prefix

        self.correlator: Optional[WindowShadeCorrelator] = None
        if self.feature_flags.get("window_shade_correlator"):
            self.correlator = WindowShadeCorrelator(
                self.publish, topic_base=f"{topic_prefix}/{COMPOSITE_NAME}"
            )

        # Set by the MQTT bridge feature when it is enabled.
        self.bridge = None
        # Set by the FastAPI lifespan; used to hand work from CAN/MQTT threads to the loop.
        self.loop = None

        self.lock = threading.Lock()
        self.latest_records: Dict[str, Dict[str, Any]] = {}
        self.unknown_dgns: Dict[str, UnknownDGNEntry] = {}

    @property
    def tx_interface(self) -> Optional[str]:
        """Interface used for transmitting; the first configured channel."""
        channels = self.canbus_config.get("channels") or []
        return channels[0] if channels else None

    @property
    def tx_priority(self) -> int:
        return self.canbus_config.get("priority", 6)

    @property
    def tx_source_address(self) -> int:
        return self.canbus_config.get("source_address", 0xA0)

    def publish(self, topic: str, record: Mapping[str, Any], retain: bool = False) -> bool:
        """Publish a record through the MQTT bridge, if one is running."""
        if self.bridge is None:
            return False
        try:
            return self.bridge.publish(topic, record, retain=retain)
        except (OSError, ValueError) as e:
            MQTT_PUBLISH_ERRORS.inc()
            logger.error(f"MQTT publish to {topic} failed: {e}")
            return False

    def publish_record(self, record: Mapping[str, Any]) -> bool:
        return self.publish(record_topic(record, self.topic_prefix), record)

    def store_record(self, record: Dict[str, Any]) -> None:
        with self.lock:
            self.latest_records[record_topic(record, self.topic_prefix)] = record

    def record_unknown_dgn(self, dgn: str, arbitration_id: int, data_hex: str) -> None:
        now = time.time()
        with self.lock:
            entry = self.unknown_dgns.get(dgn)
            if entry is None:
                self.unknown_dgns[dgn] = UnknownDGNEntry(
                    dgn=dgn,
                    arbitration_id_hex=f"{arbitration_id:08X}",
                    first_seen_timestamp=now,
                    last_seen_timestamp=now,
                    count=1,
                    last_data_hex=data_hex,
                )
                UNKNOWN_DGN_GAUGE.set(len(self.unknown_dgns))
            else:
                entry.arbitration_id_hex = f"{arbitration_id:08X}"
                entry.last_seen_timestamp = now
                entry.last_data_hex = data_hex
                entry.count += 1


def initialize_app_from_config() -> AppState:
    """
    Loads the specification document and builds the application state.

    An unreadable or defective specification document is fatal: the daemon
    must not run on an ambiguous table, so the error is logged and the process
    exits with status 1.
    """
    spec_path = get_actual_paths()
    try:
        spec_table = load_spec_table(spec_path)
    except (OSError, SpecIntegrityDefect) as e:
        logger.error(f"Cannot load RV-C spec document '{spec_path}': {e}")
        sys.exit(1)

    return AppState(spec_table, topic_prefix=get_mqtt_config()["topic_prefix"])


def get_app_state(request: Request) -> AppState:
    """FastAPI dependency returning the AppState of the running application."""
    return request.app.state.app_state
