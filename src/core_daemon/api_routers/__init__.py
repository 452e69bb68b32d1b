"""
api_routers

This package contains FastAPI APIRouter modules that define the API endpoints
of the rvc2mqtt daemon. Each router handles a specific domain of functionality
to maintain separation of concerns.

Routers:
    - codec: Spec inspection, decode/encode/validate and raw CAN send
    - status: Health, metrics, features, decoded records and correlator state
"""

from .codec import api_router_codec
from .status import api_router_status

__all__ = ["api_router_codec", "api_router_status"]
