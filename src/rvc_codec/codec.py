"""
rvc_codec.codec

RVCCodec bundles an immutable SpecTable with the decode, encode and
validation operations. It holds no mutable state, so one instance can be
shared freely between the CAN listener threads, the MQTT callback thread and
the API handlers.
"""

from typing import Any, Dict, Mapping, Optional

from rvc_codec.decode import decode_message
from rvc_codec.encode import encode_message, validate_payload
from rvc_codec.spec import DecoderDefinition, SpecTable


class RVCCodec:
    """Spec-driven RV-C parameter codec."""

    def __init__(self, spec_table: SpecTable):
        self.spec_table = spec_table

    def decode(self, dgn: str, data: str) -> Dict[str, Any]:
        return decode_message(self.spec_table, dgn, data)

    def encode(
        self, target: str, fields: Mapping[str, Any], instance: Optional[int] = None
    ) -> str:
        return encode_message(self.spec_table, target, fields, instance=instance)

    def validate(self, dgn: str, data: str) -> str:
        return validate_payload(self.spec_table, dgn, data)

    def lookup(self, target: str) -> Optional[DecoderDefinition]:
        return self.spec_table.lookup(target)
