"""
Defines Pydantic models for API request/response validation and serialization.

These models are used throughout the FastAPI application to ensure data consistency
and provide clear API documentation for request bodies and response payloads.

Models:
    - RawMessageRequest: A DGN and hex payload (decode, validate, raw send)
    - EncodeRequest: Named field values to encode for a message type
    - EncodeResponse: The encoded payload and whether it was queued for sending
    - ValidateResponse: A payload after the validation pass
    - SendResponse: Confirmation that a frame was queued for transmission
    - ParameterModel: One parameter of a decoder definition
    - DecoderDefinitionModel: A decoder definition as loaded from the spec document
    - UnknownDGNEntry: A DGN seen on the bus that has no decoder definition
    - SpecInfo: (re-exported from common.models)
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from common.models import SpecInfo

__all__ = [
    "RawMessageRequest",
    "EncodeRequest",
    "EncodeResponse",
    "ValidateResponse",
    "SendResponse",
    "ParameterModel",
    "DecoderDefinitionModel",
    "UnknownDGNEntry",
    "SpecInfo",
]


class RawMessageRequest(BaseModel):
    """A message type identifier and a hex payload."""

    dgn: str = Field(..., description="DGN as up to five hex digits, e.g. '1FEDA'.")
    data: str = Field(..., description="Payload as hex, e.g. '01FFC8FC00FFFFFF'.")


class EncodeRequest(BaseModel):
    """Field values to encode for a message type given by display name or DGN."""

    target: str = Field(
        ..., description="Decoder display name (e.g. 'DC_DIMMER_COMMAND_2') or DGN."
    )
    fields: Dict[str, Any] = Field(
        default_factory=dict,
        description="Field name -> value. Values may be numbers, value-table strings or 'n/a'.",
    )
    instance: Optional[int] = Field(
        None, ge=0, le=255, description="Instance number; overrides any 'instance' in fields."
    )
    send: bool = Field(False, description="Queue the encoded frame for transmission.")


class EncodeResponse(BaseModel):
    """Result of an encode request."""

    name: str
    dgn: str
    data: str
    arbitration_id: Optional[str] = None
    sent: bool = False


class ValidateResponse(BaseModel):
    """A payload after the validation pass."""

    dgn: str
    data: str
    changed: bool


class SendResponse(BaseModel):
    """Confirmation that a frame was queued for transmission."""

    status: str
    dgn: str
    data: str
    interface: str
    arbitration_id: str


class ParameterModel(BaseModel):
    """One parameter of a decoder definition."""

    name: str
    byte: str
    bit: Optional[str] = None
    type: str
    unit: Optional[str] = None
    values: Optional[Dict[str, str]] = None


class DecoderDefinitionModel(BaseModel):
    """A decoder definition, with alias parameters already merged in."""

    dgn: str
    name: str
    alias: Optional[str] = None
    range: Optional[str] = None
    parameters: List[ParameterModel] = Field(default_factory=list)


class UnknownDGNEntry(BaseModel):
    """Represents a CAN message whose DGN is not in the spec document."""

    dgn: str
    arbitration_id_hex: str
    first_seen_timestamp: float
    last_seen_timestamp: float
    count: int
    last_data_hex: str
