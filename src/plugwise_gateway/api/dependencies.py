"""FastAPI dependency injection for shared application state."""

from fastapi import Depends, HTTPException

from ..core.config import Settings
from ..devices.circle import Circle
from ..devices.circle_plus import CirclePlus
from ..protocol.frames import parse_address
from ..serial.simulator import CircleSimulator


class AppState:
    """Holds shared application state instances.

    Created during app startup and accessed via FastAPI dependencies.
    """

    def __init__(self) -> None:
        self.settings: Settings | None = None
        self.circle_plus: CirclePlus | None = None
        self.simulator: CircleSimulator | None = None


# Global app state singleton
app_state = AppState()


def get_settings() -> Settings:
    """Get the settings instance."""
    assert app_state.settings is not None, "App not initialized"
    return app_state.settings


def get_circle_plus() -> CirclePlus:
    """Get the Circle+ handle; 503 while the stick is unavailable."""
    circle_plus = app_state.circle_plus
    if circle_plus is None or circle_plus.session.closed:
        raise HTTPException(status_code=503, detail="Stick not connected")
    return circle_plus


def resolve_address(circle: str, settings: Settings) -> int | None:
    """Resolve an alias or 16 hex digit address; None if it is neither."""
    if circle in settings.aliases:
        return parse_address(settings.aliases[circle])
    try:
        return parse_address(circle)
    except ValueError:
        return None


def get_circle(
    circle: str,
    settings: Settings = Depends(get_settings),
    circle_plus: CirclePlus = Depends(get_circle_plus),
) -> Circle:
    """Get the handle for the ``{circle}`` path parameter."""
    address = resolve_address(circle, settings)
    if address is None:
        raise HTTPException(status_code=404, detail=f"Unknown circle: {circle}")
    return circle_plus.circle(address)
