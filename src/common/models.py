"""
common.models

Shared Pydantic models for use across rvc2mqtt modules.

SpecInfo:
    Represents metadata of the loaded RV-C specification document: its
    API_VERSION, the file in use, how many decoder definitions it carries and
    how many of those are placeholders without parameters.
"""

from typing import Optional

from pydantic import BaseModel


class SpecInfo(BaseModel):
    """
    SpecInfo

    Represents metadata of the specification table loaded at startup.

    Attributes:
        api_version (Optional[str]): API_VERSION declared by the document (e.g., '1.0').
        filename (Optional[str]): Specification filename in use.
        dgn_count (int): Number of decoder definitions.
        pending_count (int): Definitions with no parameters ("DECODER PENDING").
        notes (Optional[str]): Additional notes, e.g. where the document came from.
    """

    api_version: Optional[str] = None
    filename: Optional[str] = None
    dgn_count: int = 0
    pending_count: int = 0
    notes: Optional[str] = None
