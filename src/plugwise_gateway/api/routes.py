"""API route handlers."""

import logging
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException, Query

from plugwise_gateway.api.dependencies import get_circle, get_circle_plus, get_settings
from plugwise_gateway.core.config import Settings
from plugwise_gateway.core.errors import (
    EncodingError,
    PlugwiseError,
    ProtocolError,
    RequestTimeoutError,
    TransportError,
)
from plugwise_gateway.core.models import (
    CirclesResponse,
    CircleSummary,
    ClockResponse,
    ClockSetRequest,
    ErrorResponse,
    HistoryResponse,
    PowerResponse,
    PowerSampleModel,
    RelayResponse,
    RelaySetRequest,
)
from plugwise_gateway.devices.circle import Circle
from plugwise_gateway.devices.circle_plus import CirclePlus
from plugwise_gateway.protocol.constants import LOG_DEPTH, LOG_SLOTS_PER_POSITION
from plugwise_gateway.protocol.frames import format_address

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

DEVICE_ERRORS = {
    404: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
    504: {"model": ErrorResponse},
}


def _http_error(circle: Circle, e: PlugwiseError) -> HTTPException:
    """Map a device error to an HTTP error."""
    if isinstance(e, RequestTimeoutError):
        status = 504
    elif isinstance(e, TransportError):
        status = 503
    elif isinstance(e, ProtocolError):
        status = 502
    elif isinstance(e, EncodingError):
        status = 400
    else:
        status = 500
    logger.warning("Circle %s: %s", circle.mac, e)
    return HTTPException(status_code=status, detail=str(e))


@router.get("/circles", response_model=CirclesResponse)
async def list_circles(
    settings: Settings = Depends(get_settings),
    circle_plus: CirclePlus = Depends(get_circle_plus),
):
    """List configured and previously used Circles."""
    handles = circle_plus.circles
    summaries = []
    seen = set()
    for alias, mac in settings.aliases.items():
        address = int(mac, 16)
        handle = handles.get(address)
        calibrated = handle is not None and handle.calibration is not None
        summaries.append(CircleSummary(alias=alias, address=mac, calibrated=calibrated))
        seen.add(address)

    for address, handle in sorted(handles.items()):
        if address not in seen:
            summaries.append(
                CircleSummary(alias=None, address=format_address(address), calibrated=handle.calibration is not None)
            )

    return CirclesResponse(circles=summaries)


@router.get("/circles/{circle}/relay", response_model=RelayResponse, responses=DEVICE_ERRORS)
async def get_relay(circle: Circle = Depends(get_circle)):
    """Query the relay state."""
    try:
        state = await circle.relay_status()
    except PlugwiseError as e:
        raise _http_error(circle, e) from None
    return RelayResponse(address=circle.mac, state=state)


@router.post("/circles/{circle}/relay", response_model=RelayResponse, responses=DEVICE_ERRORS)
async def set_relay(request: RelaySetRequest, circle: Circle = Depends(get_circle)):
    """Switch the relay on or off."""
    try:
        if request.state:
            await circle.switch_on()
        else:
            await circle.switch_off()
    except PlugwiseError as e:
        raise _http_error(circle, e) from None
    return RelayResponse(address=circle.mac, state=request.state)


@router.get("/circles/{circle}/power", response_model=PowerResponse, responses=DEVICE_ERRORS)
async def get_power(circle: Circle = Depends(get_circle)):
    """Read the live power consumption."""
    try:
        usage = await circle.power_usage()
    except PlugwiseError as e:
        raise _http_error(circle, e) from None
    return PowerResponse(
        address=circle.mac,
        watts_1s=usage.watts_1s,
        watts_8s=usage.watts_8s,
        kwh_last_hour=usage.kwh_last_hour,
    )


@router.get("/circles/{circle}/history", response_model=HistoryResponse, responses=DEVICE_ERRORS)
async def get_history(
    circle: Circle = Depends(get_circle),
    hours: int = Query(24, ge=1, le=LOG_DEPTH * LOG_SLOTS_PER_POSITION, description="Hours to look back"),
):
    """
    Read logged hourly energy for the last *hours* hours.

    The window is measured back from the Circle's own clock, since log slots
    carry device timestamps. A Circle whose date is unreadable falls back to
    the gateway's clock.
    """
    samples = []
    try:
        info = await circle.info()
        start = (info.timestamp or datetime.now(timezone.utc)) - timedelta(hours=hours)
        async for sample in circle.power_history(start=start):
            samples.append(
                PowerSampleModel(
                    timestamp=sample.timestamp,
                    interval_seconds=sample.interval_seconds,
                    energy_kwh=sample.energy_kwh,
                    average_watts=sample.average_watts,
                )
            )
    except PlugwiseError as e:
        raise _http_error(circle, e) from None
    return HistoryResponse(
        address=circle.mac,
        samples=samples,
        total_kwh=sum(sample.energy_kwh for sample in samples),
    )


@router.get("/circles/{circle}/clock", response_model=ClockResponse, responses=DEVICE_ERRORS)
async def get_clock(circle: Circle = Depends(get_circle)):
    """Read the device clock."""
    try:
        clock = await circle.get_clock()
    except PlugwiseError as e:
        raise _http_error(circle, e) from None
    return ClockResponse(address=circle.mac, clock=clock)


@router.put("/circles/{circle}/clock", response_model=ClockResponse, responses=DEVICE_ERRORS)
async def set_clock(request: ClockSetRequest, circle: Circle = Depends(get_circle)):
    """Set the device clock (default: now)."""
    value = request.clock or datetime.now(timezone.utc)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    try:
        await circle.set_clock(value)
    except PlugwiseError as e:
        raise _http_error(circle, e) from None
    return ClockResponse(address=circle.mac, clock=value)
