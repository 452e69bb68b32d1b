"""
core_daemon

The rvc2mqtt daemon: reads RV-C frames from CAN, publishes decoded records
over MQTT, turns MQTT command topics into CAN frames and serves a small
FastAPI backend for inspection and manual encode/decode.

Modules:
    - app_state: Shared application state built once at startup
    - can_manager: CAN bus listeners, writer task and CAN identifier layout
    - can_processing: Frame decoding/dispatch and MQTT command handling
    - config: Application configuration and environment setup
    - correlator: Window shade status correlation and synthetic dimmer status
    - feature_manager: Feature registry and lifecycle
    - main: FastAPI application setup and server entry point
    - models: Pydantic models for API request/response validation
    - mqtt_bridge: paho-mqtt publisher and command subscriber

The FastAPI application lives in core_daemon.main; importing it loads the
specification document.
"""

from ._version import VERSION
from .config import configure_logger, get_actual_paths

__all__ = [
    "VERSION",
    "configure_logger",
    "get_actual_paths",
]
