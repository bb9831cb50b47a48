"""Main application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from plugwise_gateway import __version__
from plugwise_gateway.api.dependencies import app_state
from plugwise_gateway.api.routes import router as api_router
from plugwise_gateway.core.config import Settings, setup_logging
from plugwise_gateway.core.errors import PlugwiseError
from plugwise_gateway.core.models import HealthResponse
from plugwise_gateway.devices.circle_plus import connect_device, connect_simulator
from plugwise_gateway.serial.simulator import CircleSimulator

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    settings = app_state.settings or Settings()
    app_state.settings = settings

    setup_logging(settings.log_level)
    logger.info("Starting Plugwise Gateway v%s", __version__)

    try:
        if settings.simulate:
            app_state.simulator = CircleSimulator()
            app_state.circle_plus = await connect_simulator(
                app_state.simulator,
                timeout=settings.request_timeout,
                max_retries=settings.max_retries,
            )
            logger.info("Using simulated Circle network")
        else:
            app_state.circle_plus = await connect_device(
                settings.serial_port,
                baudrate=settings.serial_baud,
                timeout=settings.request_timeout,
                max_retries=settings.max_retries,
            )
            logger.info("Connected to %s", settings.serial_port)
    except PlugwiseError as e:
        logger.warning("Failed to start stick on %s: %s", settings.serial_port, e)
        app_state.circle_plus = None

    yield

    # Shutdown
    logger.info("Shutting down...")
    if app_state.circle_plus is not None:
        await app_state.circle_plus.close()
        app_state.circle_plus = None
    app_state.simulator = None


app = FastAPI(
    title="Plugwise Gateway",
    description="Local REST API gateway for Plugwise Circle power plugs",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(api_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Plugwise Gateway",
        "version": __version__,
        "status": "running",
    }


@app.get("/health", response_model=HealthResponse)
async def health():
    """Health check endpoint."""
    circle_plus = app_state.circle_plus
    settings = app_state.settings
    circles_count = len(settings.aliases) if settings is not None else 0

    if circle_plus is None or circle_plus.session.closed:
        return HealthResponse(
            status="unhealthy",
            stick_connected=False,
            network_online=False,
            circles_count=circles_count,
            simulated=app_state.simulator is not None,
        )

    online = circle_plus.network_info is not None and circle_plus.network_info.is_online
    return HealthResponse(
        status="healthy" if online else "degraded",
        stick_connected=True,
        network_online=online,
        circles_count=circles_count,
        simulated=app_state.simulator is not None,
    )


def main():
    """Run the application (for CLI entry point)."""
    import uvicorn

    settings = Settings()
    setup_logging(settings.log_level)
    app_state.settings = settings

    uvicorn.run(app, host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    main()
