"""
Defines Prometheus metrics for monitoring the rvc2mqtt application.

This module centralizes the definition of all Counter, Gauge, and Histogram
metrics used to track CAN frame processing, window shade correlation, the
MQTT bridge, the CAN transmit queue and the HTTP API.
"""

from prometheus_client import Counter, Gauge, Histogram

FRAME_COUNTER = Counter("rvc2mqtt_frames_total", "Total CAN frames received")
DECODE_ERRORS = Counter("rvc2mqtt_decode_errors_total", "Total decode errors")
LOOKUP_MISSES = Counter("rvc2mqtt_lookup_misses_total", "Frames whose DGN has no decoder")
SUCCESSFUL_DECODES = Counter("rvc2mqtt_successful_decodes_total", "Total successful decodes")
FRAME_LATENCY = Histogram(
    "rvc2mqtt_frame_latency_seconds", "Time spent decoding & dispatching frames"
)
DGN_USAGE_COUNTER = Counter("rvc2mqtt_dgn_usage_total", "DGN usage by frame count", ["dgn"])
INST_USAGE_COUNTER = Counter(
    "rvc2mqtt_instance_usage_total", "Instance usage by DGN", ["dgn", "instance"]
)
UNKNOWN_DGN_GAUGE = Gauge("rvc2mqtt_unknown_dgns", "Distinct DGNs seen without a decoder")

CORRELATOR_PUBLISHES = Counter(
    "rvc2mqtt_correlator_publishes_total", "Composite window shade records published"
)
CORRELATION_ERRORS = Counter(
    "rvc2mqtt_correlation_errors_total", "Driver status records rejected by the correlator"
)

MQTT_PUBLISHES = Counter("rvc2mqtt_mqtt_publishes_total", "MQTT messages published", ["kind"])
MQTT_PUBLISH_ERRORS = Counter("rvc2mqtt_mqtt_publish_errors_total", "Failed MQTT publishes")
MQTT_COMMANDS = Counter("rvc2mqtt_mqtt_commands_total", "Commands received over MQTT")
MQTT_COMMAND_ERRORS = Counter(
    "rvc2mqtt_mqtt_command_errors_total", "Commands dropped because they could not be encoded"
)

CAN_TX_QUEUE_LENGTH = Gauge(
    "rvc2mqtt_can_tx_queue_length", "Number of pending messages in the CAN transmit queue"
)
CAN_TX_ENQUEUE_TOTAL = Counter(
    "rvc2mqtt_can_tx_enqueue_total", "Total number of messages enqueued to the CAN transmit queue"
)
CAN_TX_ENQUEUE_LATENCY = Histogram(
    "rvc2mqtt_can_tx_enqueue_latency_seconds", "Latency for enqueueing CAN command messages"
)

HTTP_REQUESTS = Counter(
    "rvc2mqtt_http_requests_total", "Total HTTP requests", ["method", "endpoint", "status_code"]
)
HTTP_LATENCY = Histogram(
    "rvc2mqtt_http_request_latency_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
)
