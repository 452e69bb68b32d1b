"""
Defines FastAPI APIRouter for codec operations.

This module includes routes to inspect the loaded specification table, decode
and encode payloads, run the validation pass, and queue frames for sending on
the CAN bus.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from core_daemon.app_state import AppState, get_app_state
from core_daemon.can_manager import build_can_id, create_can_message, enqueue_can_message
from core_daemon.models import (
    DecoderDefinitionModel,
    EncodeRequest,
    EncodeResponse,
    ParameterModel,
    RawMessageRequest,
    SendResponse,
    SpecInfo,
    ValidateResponse,
)
from rvc_codec import FieldDefinition, InvalidPayload, UnknownMessageType
from rvc_codec.decode import normalize_dgn

logger = logging.getLogger(__name__)

api_router_codec = APIRouter()  # FastAPI router for codec endpoints


def _range_text(start: int, end: int) -> str:
    return str(start) if start == end else f"{start}-{end}"


def parameter_model(field_def: FieldDefinition) -> ParameterModel:
    return ParameterModel(
        name=field_def.name,
        byte=_range_text(field_def.byte_start, field_def.byte_end),
        bit=(
            _range_text(field_def.bit_start, field_def.bit_end) if field_def.has_bits else None
        ),
        type=field_def.type.value,
        unit=field_def.unit.value if field_def.unit is not None else None,
        values=dict(field_def.values) if field_def.values is not None else None,
    )


async def _queue_frame(state: AppState, dgn: str, data: str) -> str:
    """Queue a frame on the transmit interface; returns the arbitration ID as hex."""
    interface = state.tx_interface
    if interface is None:
        raise HTTPException(status_code=503, detail="No CAN interface configured for sending.")
    msg = create_can_message(
        dgn, data, priority=state.tx_priority, source_address=state.tx_source_address
    )
    try:
        await enqueue_can_message(msg, interface)
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))
    logger.info(f"API queued DGN {dgn} {data} for {interface}")
    return f"{msg.arbitration_id:08X}"


@api_router_codec.get("/spec", response_model=SpecInfo)
async def get_spec_info(state: AppState = Depends(get_app_state)):
    """Metadata of the loaded specification document."""
    return state.spec_table.info()


@api_router_codec.get("/spec/{target}", response_model=DecoderDefinitionModel)
async def get_decoder_definition(target: str, state: AppState = Depends(get_app_state)):
    """
    A decoder definition by display name or DGN (range-bounded entries
    included), with alias parameters merged in.
    """
    decoder = state.spec_table.lookup(target)
    if decoder is None:
        try:
            decoder = state.spec_table.resolve(normalize_dgn(target))
        except InvalidPayload:
            decoder = None
    if decoder is None:
        raise HTTPException(status_code=404, detail=f"Unknown message type: {target}")

    return DecoderDefinitionModel(
        dgn=decoder.dgn,
        name=decoder.name,
        alias=decoder.alias,
        range=(
            f"{decoder.dgn_range[0]:05X}-{decoder.dgn_range[1]:05X}"
            if decoder.dgn_range
            else None
        ),
        parameters=[parameter_model(f) for f in state.spec_table.effective_fields(decoder)],
    )


@api_router_codec.post("/decode", response_model=Dict[str, Any])
async def decode(request: RawMessageRequest, state: AppState = Depends(get_app_state)):
    """Decode a payload. Unknown DGNs yield an UNKNOWN-<dgn> record."""
    try:
        return state.codec.decode(request.dgn, request.data)
    except InvalidPayload as e:
        raise HTTPException(status_code=422, detail=str(e))


@api_router_codec.post("/encode", response_model=EncodeResponse)
async def encode(request: EncodeRequest, state: AppState = Depends(get_app_state)):
    """Encode field values and optionally queue the frame for sending."""
    try:
        data = state.codec.encode(request.target, request.fields, request.instance)
    except UnknownMessageType as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidPayload as e:
        raise HTTPException(status_code=422, detail=str(e))

    decoder = state.codec.lookup(request.target)
    can_id = build_can_id(int(decoder.dgn, 16), state.tx_priority, state.tx_source_address)
    response = EncodeResponse(
        name=decoder.name, dgn=decoder.dgn, data=data, arbitration_id=f"{can_id:08X}"
    )
    if request.send:
        await _queue_frame(state, decoder.dgn, data)
        response.sent = True
    return response


@api_router_codec.post("/validate", response_model=ValidateResponse)
async def validate(request: RawMessageRequest, state: AppState = Depends(get_app_state)):
    """Run the validation pass over a caller-built payload."""
    try:
        dgn = normalize_dgn(request.dgn)
        data = state.codec.validate(dgn, request.data)
    except InvalidPayload as e:
        raise HTTPException(status_code=422, detail=str(e))
    original = "".join(request.data.split()).upper()
    return ValidateResponse(dgn=dgn, data=data, changed=data != original)


@api_router_codec.post("/can/send", response_model=SendResponse)
async def send_raw(request: RawMessageRequest, state: AppState = Depends(get_app_state)):
    """Validate a caller-built payload and queue it for sending."""
    try:
        dgn = normalize_dgn(request.dgn)
        data = state.codec.validate(dgn, request.data)
    except InvalidPayload as e:
        raise HTTPException(status_code=422, detail=str(e))

    arbitration_id = await _queue_frame(state, dgn, data)
    return SendResponse(
        status="queued",
        dgn=dgn,
        data=data,
        interface=state.tx_interface,
        arbitration_id=arbitration_id,
    )
