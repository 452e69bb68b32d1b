"""
common

This package contains shared models and utilities used across the rvc2mqtt project.

Modules:
    - models: Defines shared Pydantic models used by multiple components
"""

from .models import SpecInfo

__all__ = ["SpecInfo"]
