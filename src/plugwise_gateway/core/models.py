"""API data models for the Plugwise gateway."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

# ============================================================================
# API Request/Response Models
# ============================================================================


class CircleSummary(BaseModel):
    """A configured Circle."""

    alias: str | None = Field(None, description="Configured alias")
    address: str = Field(..., min_length=16, max_length=16, description="Hardware address (16 hex digits)")
    calibrated: bool = Field(..., description="Whether calibration constants are cached")


class CirclesResponse(BaseModel):
    """Response model for GET /api/circles."""

    circles: list[CircleSummary] = Field(default_factory=list, description="Configured Circles")


class RelayResponse(BaseModel):
    """Relay state of a Circle."""

    address: str = Field(..., description="Hardware address")
    state: bool = Field(..., description="True when the relay is on")
    timestamp: datetime = Field(default_factory=datetime.now, description="Time of the reading")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"address": "000D6F0000123456", "state": True, "timestamp": "2026-01-13T10:30:00"}
        }
    )


class RelaySetRequest(BaseModel):
    """Request model for POST /api/circles/{circle}/relay."""

    state: bool = Field(..., description="True to switch on, False to switch off")

    model_config = ConfigDict(json_schema_extra={"example": {"state": True}})


class PowerResponse(BaseModel):
    """Live power reading of a Circle."""

    address: str = Field(..., description="Hardware address")
    watts_1s: float = Field(..., description="Power averaged over 1 second (W)")
    watts_8s: float = Field(..., description="Power averaged over 8 seconds (W)")
    kwh_last_hour: float = Field(..., description="Energy consumed in the current hour (kWh)")
    timestamp: datetime = Field(default_factory=datetime.now, description="Time of the reading")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "address": "000D6F0000123456",
                "watts_1s": 61.2,
                "watts_8s": 60.8,
                "kwh_last_hour": 0.041,
                "timestamp": "2026-01-13T10:30:00",
            }
        }
    )


class PowerSampleModel(BaseModel):
    """One logged hour."""

    timestamp: datetime = Field(..., description="Start of the interval (UTC)")
    interval_seconds: int = Field(..., gt=0, description="Interval length in seconds")
    energy_kwh: float = Field(..., description="Energy consumed in the interval (kWh)")
    average_watts: float = Field(..., description="Mean power over the interval (W)")


class HistoryResponse(BaseModel):
    """Response model for GET /api/circles/{circle}/history."""

    address: str = Field(..., description="Hardware address")
    samples: list[PowerSampleModel] = Field(default_factory=list, description="Samples, oldest first")
    total_kwh: float = Field(..., ge=0, description="Sum of sample energies (kWh)")


class ClockResponse(BaseModel):
    """Device clock of a Circle."""

    address: str = Field(..., description="Hardware address")
    clock: datetime = Field(..., description="Device time (UTC)")


class ClockSetRequest(BaseModel):
    """Request model for PUT /api/circles/{circle}/clock; omit ``clock`` for now."""

    clock: datetime | None = Field(None, description="New device time; defaults to now")


class ErrorResponse(BaseModel):
    """Response model for errors."""

    success: bool = Field(False, description="Operation success status")
    error: str = Field(..., description="Error message")
    detail: str | None = Field(None, description="Additional error details")
    timestamp: datetime = Field(default_factory=datetime.now, description="Error timestamp")


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str = Field(..., description="Health status (healthy/degraded/unhealthy)")
    stick_connected: bool = Field(..., description="Whether the transport session is open")
    network_online: bool = Field(..., description="Whether the Circle+ reported the network online")
    circles_count: int = Field(..., ge=0, description="Number of configured Circles")
    simulated: bool = Field(False, description="Whether the simulator is in use")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "healthy",
                "stick_connected": True,
                "network_online": True,
                "circles_count": 3,
                "simulated": False,
            }
        }
    )
