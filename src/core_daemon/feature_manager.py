"""
Feature manager for the rvc2mqtt daemon.

Features (the MQTT bridge, window shade correlation, ...) are registered here,
enabled or disabled from configuration, and started/stopped with the
application.
"""

import functools
import logging
from typing import Dict, Optional

from core_daemon.app_state import AppState
from core_daemon.can_processing import process_command_message
from core_daemon.config import get_mqtt_config

from .feature_base import Feature
from .mqtt_bridge import MqttBridge, MqttBridgeFeature

logger = logging.getLogger(__name__)


# Registry of features by name
_registered_features: Dict[str, Feature] = {}


def register_feature(feature: Feature):
    """Register a feature instance."""
    _registered_features[feature.name] = feature
    logger.info(f"Registered feature: {feature.name} (enabled={feature.enabled})")


def get_feature(name: str) -> Optional[Feature]:
    return _registered_features.get(name)


def get_enabled_features() -> Dict[str, Feature]:
    return {k: v for k, v in _registered_features.items() if v.enabled}


def get_all_features() -> Dict[str, Feature]:
    return dict(_registered_features)


def get_core_features() -> Dict[str, Feature]:
    return {k: v for k, v in _registered_features.items() if v.core}


def get_optional_features() -> Dict[str, Feature]:
    return {k: v for k, v in _registered_features.items() if not v.core}


def clear_features():
    _registered_features.clear()


async def startup_all():
    for feature in get_enabled_features().values():
        logger.info(f"Starting feature: {feature.name}")
        await feature.startup()


async def shutdown_all():
    for feature in get_enabled_features().values():
        logger.info(f"Shutting down feature: {feature.name}")
        await feature.shutdown()


def register_default_features(state: AppState):
    """
    Register the daemon's features for `state`.

    The MQTT bridge is created here (when enabled) and attached to the state so
    decoded records and composite shade records have somewhere to go.
    """
    flags = state.feature_flags

    register_feature(Feature(name="canbus", enabled=True, core=True))
    register_feature(
        Feature(
            name="window_shade_correlator",
            enabled=bool(flags.get("window_shade_correlator")),
            core=False,
        )
    )
    register_feature(
        Feature(name="dimmer_synth", enabled=bool(flags.get("dimmer_synth")), core=False)
    )

    if flags.get("mqtt"):
        mqtt_config = get_mqtt_config()
        bridge = MqttBridge(
            host=mqtt_config["host"],
            port=mqtt_config["port"],
            client_id=mqtt_config["client_id"],
            username=mqtt_config["username"],
            password=mqtt_config["password"],
            topic_prefix=state.topic_prefix,
            api_version=state.spec_table.api_version,
            on_command=functools.partial(process_command_message, state=state),
        )
        state.bridge = bridge
        register_feature(MqttBridgeFeature(bridge))
    else:
        register_feature(Feature(name="mqtt", enabled=False, core=False))
