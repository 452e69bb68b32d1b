"""
MQTT side of the bridge.

This module is responsible for:
- Connecting to the broker with paho-mqtt and reconnecting when the link drops.
- Publishing decoded records as sorted-key JSON on RVC/<name>[/<instance>].
- Publishing the spec document's API_VERSION (retained) on every connect.
- Receiving commands on RVC/<name>/set and RVC/<name>/<instance>/set and
  handing them to the command callback, which encodes and sends them.
"""

import json
import logging
from typing import Any, Callable, Mapping, Optional, Tuple, Union

import paho.mqtt.client as mqtt

from core_daemon.feature_base import Feature
from core_daemon.metrics import MQTT_COMMAND_ERRORS, MQTT_PUBLISH_ERRORS, MQTT_PUBLISHES
from rvc_codec import InvalidPayload, RVCCodecError

logger = logging.getLogger(__name__)

CommandCallback = Callable[[str, Mapping[str, Any], Optional[int]], Any]


def parse_command_topic(topic: str, prefix: str = "RVC") -> Optional[Tuple[str, Optional[int]]]:
    """
    Split a command topic into (message name, instance).

    Returns None for topics that are not command topics.

    Raises:
        InvalidPayload: the instance segment is not a number from 0 to 255.
    """
    parts = topic.split("/")
    if len(parts) not in (3, 4) or parts[0] != prefix or parts[-1] != "set" or not parts[1]:
        return None
    if len(parts) == 3:
        return parts[1], None
    try:
        instance = int(parts[2])
    except ValueError as e:
        raise InvalidPayload(f"Invalid instance '{parts[2]}' in topic {topic}") from e
    if not 0 <= instance <= 255:
        raise InvalidPayload(f"Instance {instance} in topic {topic} is out of range")
    return parts[1], instance


class MqttBridge:
    """Publishes decoded traffic and receives commands over MQTT."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 1883,
        client_id: str = "rvc2mqtt",
        username: Optional[str] = None,
        password: Optional[str] = None,
        topic_prefix: str = "RVC",
        api_version: Optional[str] = None,
        on_command: Optional[CommandCallback] = None,
        client: Optional[mqtt.Client] = None,
    ):
        self.host = host
        self.port = port
        self.topic_prefix = topic_prefix
        self.api_version = api_version
        self.on_command = on_command
        self.connected = False

        self.client = client or mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id)
        if username:
            self.client.username_pw_set(username, password)
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_message
        self.client.reconnect_delay_set(min_delay=1, max_delay=30)

    @property
    def command_topics(self) -> Tuple[str, str]:
        return f"{self.topic_prefix}/+/set", f"{self.topic_prefix}/+/+/set"

    def start(self) -> None:
        logger.info(f"Connecting to MQTT broker {self.host}:{self.port}")
        self.client.connect_async(self.host, self.port, keepalive=60)
        self.client.loop_start()

    def stop(self) -> None:
        self.client.disconnect()
        self.client.loop_stop()
        self.connected = False
        logger.info("MQTT bridge stopped")

    def publish(
        self,
        topic: str,
        payload: Union[str, Mapping[str, Any]],
        retain: bool = False,
        kind: str = "record",
    ) -> bool:
        """Publish `payload` (a string, or a record serialized as sorted-key JSON)."""
        text = payload if isinstance(payload, str) else json.dumps(payload, sort_keys=True)
        result = self.client.publish(topic, text, qos=0, retain=retain)
        if result.rc != mqtt.MQTT_ERR_SUCCESS:
            MQTT_PUBLISH_ERRORS.inc()
            logger.warning(f"MQTT publish to {topic} failed rc={result.rc}")
            return False
        MQTT_PUBLISHES.labels(kind="retained" if retain else kind).inc()
        return True

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code.is_failure:
            self.connected = False
            logger.error(f"MQTT connect to {self.host}:{self.port} failed: {reason_code}")
            return
        self.connected = True
        logger.info(f"MQTT connected to {self.host}:{self.port}")
        if self.api_version is not None:
            self.publish(f"{self.topic_prefix}/API_VERSION", self.api_version, retain=True)
        client.subscribe([(topic, 0) for topic in self.command_topics])

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties=None):
        self.connected = False
        logger.warning(f"MQTT disconnected: {reason_code}")

    def _on_message(self, client, userdata, message):
        try:
            self.handle_command(message.topic, message.payload)
        except (RVCCodecError, RuntimeError) as e:
            MQTT_COMMAND_ERRORS.inc()
            logger.warning(f"Dropped command on {message.topic}: {e}")

    def handle_command(self, topic: str, payload: bytes) -> Any:
        """
        Decode a command message and pass it to the command callback.

        Raises:
            InvalidPayload: the topic or JSON payload is malformed.
            UnknownMessageType: propagated from the callback.
        """
        parsed = parse_command_topic(topic, self.topic_prefix)
        if parsed is None:
            logger.debug(f"Ignoring message on non-command topic {topic}")
            return None
        name, instance = parsed

        try:
            fields = json.loads(payload)
        except (UnicodeDecodeError, ValueError) as e:
            raise InvalidPayload(f"Command payload on {topic} is not valid JSON: {e}") from e
        if not isinstance(fields, dict):
            raise InvalidPayload(f"Command payload on {topic} must be a JSON object")

        logger.info(f"MQTT command {name} instance={instance}: {fields}")
        if self.on_command is None:
            return None
        return self.on_command(name, fields, instance)


class MqttBridgeFeature(Feature):
    """Runs an MqttBridge for the lifetime of the application."""

    def __init__(self, bridge: MqttBridge, enabled: bool = True):
        super().__init__(
            name="mqtt",
            enabled=enabled,
            core=False,
            config={"host": bridge.host, "port": bridge.port, "topic_prefix": bridge.topic_prefix},
        )
        self.bridge = bridge

    async def startup(self):
        self.bridge.start()

    async def shutdown(self):
        self.bridge.stop()

    @property
    def health(self) -> str:
        if not self.enabled:
            return "disabled"
        return "healthy" if self.bridge.connected else "degraded"
