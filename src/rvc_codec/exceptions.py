"""
rvc_codec.exceptions

Error taxonomy shared by the codec, the specification loader and the status
correlator.

Exceptions:
    - RVCCodecError: Base class for every error raised by this package
    - UnknownMessageType: An encode target does not resolve to a decoder definition
    - InvalidPayload: Malformed input (bad hex, bad field value, wrong shape)
    - SpecIntegrityDefect: The specification document is ambiguous or malformed
    - MalformedCorrelationInput: A status record lacks its correlation key
"""


class RVCCodecError(Exception):
    """Base class for all rvc_codec errors."""


class UnknownMessageType(RVCCodecError, LookupError):
    """Raised when a display name or DGN has no decoder definition."""

    def __init__(self, target: str):
        self.target = target
        super().__init__(f"Unknown message type: {target}")


class InvalidPayload(RVCCodecError, ValueError):
    """Raised for malformed encode input or an unparsable payload."""


class SpecIntegrityDefect(RVCCodecError):
    """Raised at load time when the specification document cannot be trusted."""


class MalformedCorrelationInput(RVCCodecError, ValueError):
    """Raised when a correlator update is missing a usable driver_index."""
