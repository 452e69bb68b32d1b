"""
Manages CAN bus communication for the rvc2mqtt daemon.

It owns the python-can side of the daemon:
- the 29-bit RV-C identifier layout and message construction,
- listener threads, one per configured interface,
- the asyncio writer task that drains the transmit queue,
- the open bus objects, shared by listeners and writer.
"""

import asyncio
import logging
import threading
import time
from typing import Callable, Dict, Optional, Tuple

import can
from can.exceptions import CanInterfaceNotImplementedError

from core_daemon.metrics import CAN_TX_ENQUEUE_LATENCY, CAN_TX_ENQUEUE_TOTAL, CAN_TX_QUEUE_LENGTH

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY = 6
DEFAULT_SOURCE_ADDRESS = 0xA0
RESEND_DELAY = 0.05

# Transmit queue drained by can_writer(). Created by initialize_can_writer_task()
# so it belongs to the running event loop.
can_tx_queue: Optional["asyncio.Queue[Tuple[can.Message, str]]"] = None

# Active CAN bus interfaces, keyed by interface name.
buses: Dict[str, can.BusABC] = {}

# Bus type used when the writer has to open a bus itself.
_writer_bustype = "socketcan"
_writer_task: Optional[asyncio.Task] = None


def build_can_id(
    dgn: int, priority: int = DEFAULT_PRIORITY, source_address: int = DEFAULT_SOURCE_ADDRESS
) -> int:
    """Compose the 29-bit identifier: priority(3) | DGN(18) | source address(8)."""
    return ((priority & 0x7) << 26) | ((dgn & 0x3FFFF) << 8) | (source_address & 0xFF)


def parse_can_id(arbitration_id: int) -> Tuple[int, int, int]:
    """Split a 29-bit identifier into (priority, DGN, source address)."""
    return (arbitration_id >> 26) & 0x7, (arbitration_id >> 8) & 0x3FFFF, arbitration_id & 0xFF


def create_can_message(
    dgn: str,
    data: str,
    priority: int = DEFAULT_PRIORITY,
    source_address: int = DEFAULT_SOURCE_ADDRESS,
) -> can.Message:
    """
    Constructs a can.Message for an encoded RV-C payload.

    Args:
        dgn: Five-hex-digit DGN the payload belongs to.
        data: Hex payload (16 characters for a full frame).
        priority: Message priority (0-7).
        source_address: Source address of this node.

    Returns:
        An extended-id can.Message carrying `data`.
    """
    return can.Message(
        arbitration_id=build_can_id(int(dgn, 16), priority, source_address),
        data=bytes.fromhex(data),
        is_extended_id=True,
    )


def _open_writer_bus(interface_name: str) -> Optional[can.BusABC]:
    """Bus for `interface_name`, opened with the writer's bus type when no listener owns it."""
    bus = buses.get(interface_name)
    if bus is not None:
        return bus
    logger.warning(f"No open bus for {interface_name}; opening it with {_writer_bustype}")
    try:
        bus = can.Bus(channel=interface_name, interface=_writer_bustype)
    except (CanInterfaceNotImplementedError, can.CanError, OSError, ValueError) as e:
        logger.error(f"Dropping frame: cannot open {interface_name} ({_writer_bustype}): {e}")
        return None
    buses[interface_name] = bus
    return bus


async def can_writer():
    """
    Drain can_tx_queue onto the bus.

    RV-C devices may miss a single frame, so each one goes out twice,
    RESEND_DELAY seconds apart. A failed send drops the frame.
    """
    queue = can_tx_queue
    while True:
        msg, interface_name = await queue.get()
        CAN_TX_QUEUE_LENGTH.set(queue.qsize())
        try:
            bus = _open_writer_bus(interface_name)
            if bus is None:
                continue
            for attempt in (1, 2):
                if attempt == 2:
                    await asyncio.sleep(RESEND_DELAY)
                bus.send(msg)
                logger.debug(
                    f"TX {attempt}/2 {interface_name} {msg.arbitration_id:08X} "
                    f"{bytes(msg.data).hex().upper()}"
                )
        except can.CanError as e:
            logger.error(f"Send on {interface_name} failed: {e}")
        except Exception as e:
            logger.error(f"Unexpected error sending on {interface_name}: {e}", exc_info=True)
        finally:
            queue.task_done()
            CAN_TX_QUEUE_LENGTH.set(queue.qsize())


def initialize_can_writer_task(bustype: str = "socketcan") -> asyncio.Task:
    """
    Create the transmit queue and start can_writer() on the running loop.
    """
    global can_tx_queue, _writer_bustype, _writer_task
    _writer_bustype = bustype
    can_tx_queue = asyncio.Queue()
    _writer_task = asyncio.create_task(can_writer())
    logger.info(f"CAN writer running (bustype {bustype})")
    return _writer_task


async def shutdown_can_writer_task() -> None:
    """Cancels the writer task and closes every open bus."""
    global _writer_task
    if _writer_task is not None:
        _writer_task.cancel()
        try:
            await _writer_task
        except asyncio.CancelledError:
            pass
        _writer_task = None
    for name, bus in list(buses.items()):
        try:
            bus.shutdown()
        except can.CanError as e:
            logger.warning(f"Error shutting down CAN bus '{name}': {e}")
        buses.pop(name, None)


async def enqueue_can_message(msg: can.Message, interface_name: str) -> None:
    """Queue a message for transmission from within the event loop."""
    if can_tx_queue is None:
        raise RuntimeError("CAN writer task is not running")
    queued_at = time.perf_counter()
    await can_tx_queue.put((msg, interface_name))
    CAN_TX_ENQUEUE_LATENCY.observe(time.perf_counter() - queued_at)
    CAN_TX_ENQUEUE_TOTAL.inc()
    CAN_TX_QUEUE_LENGTH.set(can_tx_queue.qsize())


def enqueue_can_message_threadsafe(
    loop: asyncio.AbstractEventLoop, msg: can.Message, interface_name: str
) -> None:
    """Queue a message for transmission from a thread other than the event loop's."""
    if can_tx_queue is None:
        raise RuntimeError("CAN writer task is not running")
    loop.call_soon_threadsafe(can_tx_queue.put_nowait, (msg, interface_name))
    CAN_TX_ENQUEUE_TOTAL.inc()


def initialize_can_listeners(
    interfaces: list[str],
    bustype: str,
    bitrate: int,
    message_handler_callback: Callable,
    logger_instance: logging.Logger,
) -> None:
    """
    Start one daemon listener thread per interface.

    Each thread opens its bus, registers it in `buses` for the writer, and
    hands every received frame to `message_handler_callback(msg, iface)`.
    """
    if not interfaces:
        logger_instance.warning("CAN_CHANNELS is empty; not listening on any CAN interface")
        return

    def listen(iface: str) -> None:
        try:
            bus = can.Bus(channel=iface, interface=bustype, bitrate=bitrate)
        except (CanInterfaceNotImplementedError, can.CanError, OSError, ValueError) as e:
            logger_instance.error(f"Not listening on {iface} ({bustype} @ {bitrate}): {e}")
            return
        buses[iface] = bus
        logger_instance.info(f"Listening on {iface} ({bustype} @ {bitrate})")

        while True:
            try:
                msg = bus.recv(timeout=1.0)
                if msg is not None:
                    message_handler_callback(msg, iface)
            except Exception as e:
                logger_instance.error(f"Listener on {iface} failed: {e}", exc_info=True)
                # Back off so a dead bus does not flood the log.
                time.sleep(1)

    for iface in interfaces:
        threading.Thread(
            target=listen, args=(iface,), name=f"can-listener-{iface}", daemon=True
        ).start()
