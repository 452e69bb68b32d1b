"""
rvc_codec
=========

Library for loading the RV-C specification table and converting CAN payloads
to and from named, human-readable values.

This package contains the spec-driven core of the bridge: a YAML
specification loader with integrity checks, the unit conversion table, the
decoder, the encoder with its validation pass, and the compatibility override
table for devices that need hand-verified byte patterns.

Functions:
    - load_spec_table: Load and validate an RV-C specification document
    - decode_message: Convert a DGN and hex payload into a decoded record
    - encode_message: Convert named values into a 16-hex-character payload
    - validate_payload: Force unclaimed bytes of a payload to FF
"""

from .codec import RVCCodec
from .decode import decode_message, get_bits, get_bytes
from .encode import COMMAND_CODES, build_data_packet, encode_message, encode_value, validate_payload
from .exceptions import (
    InvalidPayload,
    MalformedCorrelationInput,
    RVCCodecError,
    SpecIntegrityDefect,
    UnknownMessageType,
)
from .overrides import OVERRIDES
from .spec import DecoderDefinition, FieldDefinition, SpecTable, load_spec_table

__all__ = [
    "RVCCodec",
    "SpecTable",
    "DecoderDefinition",
    "FieldDefinition",
    "load_spec_table",
    "decode_message",
    "encode_message",
    "encode_value",
    "build_data_packet",
    "validate_payload",
    "get_bits",
    "get_bytes",
    "COMMAND_CODES",
    "OVERRIDES",
    "RVCCodecError",
    "UnknownMessageType",
    "InvalidPayload",
    "SpecIntegrityDefect",
    "MalformedCorrelationInput",
]
