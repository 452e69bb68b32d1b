"""
Base class for daemon features (core or optional).
"""

from typing import Any, Dict, Optional


class Feature:
    """
    A part of the daemon that can be switched on or off from configuration.

    Subclasses override startup/shutdown for the work they own (e.g. the MQTT
    client loop) and health for a real readiness check.
    """

    name: str
    enabled: bool
    core: bool
    config: dict

    def __init__(
        self, name: str, enabled: bool = False, core: bool = False, config: Optional[dict] = None
    ):
        self.name = name
        self.enabled = enabled
        self.core = core
        self.config = config or {}

    async def startup(self):
        """Called from the application lifespan when the feature is enabled."""
        pass

    async def shutdown(self):
        """Called from the application lifespan when the feature is enabled."""
        pass

    @property
    def health(self) -> str:
        """
        "disabled" for switched-off features, otherwise "unknown" unless a
        subclass knows better ("healthy", "degraded", ...).
        """
        if not self.enabled:
            return "disabled"
        return "unknown"

    def as_dict(self) -> Dict[str, Any]:
        """Summary for the features endpoint. Secrets never appear in `config`."""
        return {
            "name": self.name,
            "enabled": self.enabled,
            "core": self.core,
            "health": self.health,
            "config": dict(self.config),
        }
