"""
Handles the processing of CAN traffic for the rvc2mqtt daemon.

This module is responsible for:
- Receiving raw CAN messages and extracting the DGN from the arbitration ID.
- Decoding the message payload with the shared RVCCodec.
- Tracking DGNs that have no decoder definition.
- Publishing decoded records (and the synthetic dimmer status) over MQTT.
- Feeding driver status records to the window shade correlator.
- Encoding commands received over MQTT and queueing them for transmission.
- Recording relevant metrics.
"""

import logging
import time
from typing import Any, Mapping, Optional

import can

from core_daemon.app_state import AppState
from core_daemon.can_manager import (
    create_can_message,
    enqueue_can_message_threadsafe,
    parse_can_id,
)
from core_daemon.correlator import synthesize_dimmer_status
from core_daemon.metrics import (
    DECODE_ERRORS,
    DGN_USAGE_COUNTER,
    FRAME_COUNTER,
    FRAME_LATENCY,
    INST_USAGE_COUNTER,
    LOOKUP_MISSES,
    MQTT_COMMANDS,
    SUCCESSFUL_DECODES,
)
from rvc_codec import InvalidPayload, MalformedCorrelationInput

logger = logging.getLogger(__name__)


def process_can_message(
    msg: can.Message,
    iface_name: str,
    state: AppState,
):
    """
    Decode one received frame and dispatch the result.

    Runs on a CAN listener thread; every failure is logged and counted here so
    the listener keeps running.
    """
    FRAME_COUNTER.inc()
    start_time = time.perf_counter()

    _, dgn_value, source_address = parse_can_id(msg.arbitration_id)
    dgn = f"{dgn_value:05X}"
    data_hex = bytes(msg.data).hex().upper()

    try:
        record = state.codec.decode(dgn, data_hex)
    except InvalidPayload as e:
        logger.error(f"Decode error for DGN {dgn} on {iface_name}: {e}")
        DECODE_ERRORS.inc()
        return
    finally:
        FRAME_LATENCY.observe(time.perf_counter() - start_time)

    DGN_USAGE_COUNTER.labels(dgn=dgn).inc()
    if record["name"].startswith("UNKNOWN-"):
        LOOKUP_MISSES.inc()
        state.record_unknown_dgn(dgn, msg.arbitration_id, data_hex)
        logger.debug(f"No decoder for DGN {dgn} (SA {source_address:02X}) on {iface_name}")
    else:
        SUCCESSFUL_DECODES.inc()
        if record.get("instance") is not None:
            INST_USAGE_COUNTER.labels(dgn=dgn, instance=str(record["instance"])).inc()

    record["timestamp"] = msg.timestamp or time.time()
    state.store_record(record)
    state.publish_record(record)

    if state.feature_flags.get("dimmer_synth"):
        synthetic = synthesize_dimmer_status(record)
        if synthetic is not None:
            state.publish_record(synthetic)

    if state.correlator is not None:
        try:
            state.correlator.update(record)
        except MalformedCorrelationInput as e:
            logger.warning(f"Dropped driver status from {iface_name}: {e}")


def process_command_message(
    target: str,
    fields: Mapping[str, Any],
    instance: Optional[int],
    state: AppState,
) -> str:
    """
    Encode a command received over MQTT and queue it for transmission.

    Returns the encoded payload.

    Raises:
        UnknownMessageType: `target` is not a known message type.
        InvalidPayload: `fields` cannot be encoded.
        RuntimeError: no CAN interface or writer is available.
    """
    MQTT_COMMANDS.inc()
    decoder = state.codec.lookup(target)
    data = state.codec.encode(target, fields, instance)

    interface = state.tx_interface
    if interface is None or state.loop is None:
        raise RuntimeError(f"No CAN interface available to send {decoder.name}")

    msg = create_can_message(
        decoder.dgn, data, priority=state.tx_priority, source_address=state.tx_source_address
    )
    enqueue_can_message_threadsafe(state.loop, msg, interface)
    logger.info(f"Queued {decoder.name} ({decoder.dgn}) {data} for {interface}")
    return data
