"""
Handles application configuration for the rvc2mqtt daemon.

This module is responsible for:
- Configuring logging for the application.
- Determining the path to the RV-C specification document, considering the
  CAN_SPEC_PATH environment override and the bundled default.
- Providing FastAPI application settings (title, description, root_path).
- Providing CAN bus configuration (channels, bustype, bitrate, transmit
  addressing) from environment variables.
- Providing MQTT broker settings and feature switches.
"""

import logging
import os

import coloredlogs

# ── Logging Configuration ──────────────────────────────────────────────────
module_logger = logging.getLogger(__name__)

# Resolved path to the RV-C specification document, populated by get_actual_paths().
ACTUAL_SPEC_PATH: str | None = None


def configure_logger():
    root_logger = logging.getLogger()
    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()

    log_level_int = getattr(logging, log_level_str, None)
    if not isinstance(log_level_int, int):
        module_logger.warning(f"Invalid LOG_LEVEL '{log_level_str}'. Defaulting to INFO.")
        log_level_int = logging.INFO

    log_format = "%(asctime)s %(name)s[%(process)d] %(levelname)s %(message)s"

    root_logger.setLevel(logging.DEBUG)

    # Drop handlers installed by earlier calls so output is not duplicated.
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    coloredlogs.install(
        level=log_level_int,
        fmt=log_format,
        logger=root_logger,
        reconfigure=True,
    )

    return root_logger


# ── Specification document path ────────────────────────────────────────────
def get_actual_paths():
    """
    Determines the path of the RV-C specification document in use.

    CAN_SPEC_PATH overrides the bundled document when it names a readable
    file; otherwise the bundled default from rvc_codec is used and a warning
    is logged. The result is cached in ACTUAL_SPEC_PATH.

    Returns:
        str: The path to the specification document.
    """
    global ACTUAL_SPEC_PATH

    if ACTUAL_SPEC_PATH is not None:
        return ACTUAL_SPEC_PATH

    from rvc_codec.spec import _default_paths

    default_spec_path = _default_paths()
    spec_override_env = os.getenv("CAN_SPEC_PATH")

    actual_spec_path = default_spec_path
    if spec_override_env:
        if os.path.exists(spec_override_env) and os.access(spec_override_env, os.R_OK):
            actual_spec_path = spec_override_env
        else:
            module_logger.warning(
                f"Override RVC Spec Path '{spec_override_env}' is missing or "
                f"unreadable. Falling back to bundled default: '{default_spec_path}'"
            )

    ACTUAL_SPEC_PATH = actual_spec_path
    module_logger.info(f"Using RV-C spec document: {ACTUAL_SPEC_PATH}")
    return ACTUAL_SPEC_PATH


# ── FastAPI Configuration ──────────────────────────────────────────────────
def get_fastapi_config():
    """
    Retrieves FastAPI application settings from environment variables.

    Returns:
        dict: A dictionary containing title, server_description, and root_path
              for the FastAPI application.
    """
    return {
        "title": os.getenv("RVC2MQTT_TITLE", "rvc2mqtt"),
        "server_description": os.getenv("RVC2MQTT_SERVER_DESCRIPTION", "RV-C to MQTT Bridge"),
        "root_path": os.getenv("RVC2MQTT_ROOT_PATH", ""),
    }


# ── CAN Bus Configuration ─────────────────────────────────────────────────
def get_canbus_config():
    """
    Retrieves CAN bus configuration settings from environment variables.

    Returns:
        dict: A dictionary containing:
              - 'channels': A list of CAN interface names (e.g., ['can0']).
                An empty CAN_CHANNELS yields an empty list.
              - 'bustype': The CAN bus type (e.g., 'socketcan').
              - 'bitrate': The CAN bus bitrate as an integer.
              - 'source_address': Source address used for transmitted frames.
              - 'priority': Priority used for transmitted frames.
    """
    channels = [c.strip() for c in os.getenv("CAN_CHANNELS", "can0").split(",") if c.strip()]
    return {
        "channels": channels,
        "bustype": os.getenv("CAN_BUSTYPE", "socketcan"),
        "bitrate": int(os.getenv("CAN_BITRATE", "250000")),
        "source_address": int(os.getenv("CAN_SOURCE_ADDRESS", "A0"), 16),
        "priority": int(os.getenv("CAN_PRIORITY", "6")),
    }


# ── MQTT Configuration ────────────────────────────────────────────────────
def get_mqtt_config():
    """
    Retrieves MQTT broker settings from environment variables.

    Returns:
        dict: host, port, username, password, client_id and topic_prefix.
    """
    return {
        "host": os.getenv("MQTT_HOST", "localhost"),
        "port": int(os.getenv("MQTT_PORT", "1883")),
        "username": os.getenv("MQTT_USERNAME") or None,
        "password": os.getenv("MQTT_PASSWORD") or None,
        "client_id": os.getenv("MQTT_CLIENT_ID", "rvc2mqtt"),
        "topic_prefix": os.getenv("MQTT_TOPIC_PREFIX", "RVC"),
    }


def get_feature_flags():
    """Feature switches; each is on when its variable is "1"."""
    return {
        "mqtt": os.getenv("ENABLE_MQTT", "1") == "1",
        "window_shade_correlator": os.getenv("ENABLE_WINDOW_SHADE_CORRELATOR", "1") == "1",
        "dimmer_synth": os.getenv("ENABLE_DIMMER_SYNTH", "1") == "1",
    }
