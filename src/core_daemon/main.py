#!/usr/bin/env python3
"""
Main entry point and central orchestrator for the rvc2mqtt daemon.

This script initializes and runs the FastAPI application that bridges RV-C
(Recreational Vehicle Controller Area Network) traffic to MQTT and a small
HTTP API.

Key responsibilities include:
- Configuring application-wide logging.
- Loading the RV-C specification document into the shared AppState
  (see app_state.py); a defective document stops the daemon.
- Setting up CAN bus listeners and the CAN writer task (see can_manager.py).
- Decoding received frames, publishing them over MQTT and feeding the window
  shade correlator (see can_processing.py, correlator.py).
- Starting the MQTT bridge, which turns command topics into CAN frames
  (see mqtt_bridge.py).
- Initializing the FastAPI application: Prometheus middleware, the health
  route and the API routers.
- Providing a command-line interface to start the Uvicorn server.
"""
import asyncio
import functools
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.exceptions import ResponseValidationError
from fastapi.responses import PlainTextResponse

from core_daemon._version import VERSION
from core_daemon.app_state import AppState, initialize_app_from_config
from core_daemon.can_manager import (
    initialize_can_listeners,
    initialize_can_writer_task,
    shutdown_can_writer_task,
)
from core_daemon.can_processing import process_can_message
from core_daemon.config import configure_logger, get_fastapi_config
from core_daemon.feature_manager import register_default_features
from core_daemon.feature_manager import shutdown_all as feature_shutdown_all
from core_daemon.feature_manager import startup_all as feature_startup_all
from core_daemon.middleware import prometheus_http_middleware

from .api_routers import api_router_codec, api_router_status

# ── Logging ──────────────────────────────────────────────────────────────────
logger = configure_logger()


def create_app(state: Optional[AppState] = None) -> FastAPI:
    """
    Build the FastAPI application around `state` (loaded from configuration
    when not given).
    """
    if state is None:
        logger.info(f"rvc2mqtt {VERSION} starting up...")
        state = initialize_app_from_config()

    # ── FastAPI setup ──────────────────────────────────────────────────────────
    fastapi_config = get_fastapi_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # --- Startup ---
        state.loop = asyncio.get_running_loop()
        canbus_config = state.canbus_config
        initialize_can_writer_task(bustype=canbus_config["bustype"])

        message_handler_with_args = functools.partial(process_can_message, state=state)
        initialize_can_listeners(
            interfaces=canbus_config["channels"],
            bustype=canbus_config["bustype"],
            bitrate=canbus_config["bitrate"],
            message_handler_callback=message_handler_with_args,
            logger_instance=logger,
        )
        register_default_features(state)
        await feature_startup_all()
        yield
        # --- Shutdown ---
        await feature_shutdown_all()
        await shutdown_can_writer_task()
        state.loop = None
        logger.info("rvc2mqtt shutting down...")

    app = FastAPI(
        title=fastapi_config["title"],
        version=VERSION,
        servers=[{"url": "/", "description": fastapi_config["server_description"]}],
        root_path=fastapi_config["root_path"],
        lifespan=lifespan,
    )
    app.state.app_state = state

    # ── Middleware ─────────────────────────────────────────────────────────────
    @app.middleware("http")
    async def prometheus_middleware_handler(request, call_next):
        """Prometheus metrics middleware for HTTP requests."""
        return await prometheus_http_middleware(request, call_next)

    # ── Exception Handlers ─────────────────────────────────────────────────────
    @app.exception_handler(ResponseValidationError)
    async def validation_exception_handler(request, exc):
        """Handles response validation errors with a plain text message."""
        return PlainTextResponse(f"Validation error: {exc}", status_code=500)

    # ── Container health check ─────────────────────────────────────────────────
    @app.get("/health", response_class=PlainTextResponse)
    async def health():
        """Plain OK for container health checks."""
        return "OK"

    # ── API Routers ────────────────────────────────────────────────────────────
    app.include_router(api_router_codec, prefix="/api")
    app.include_router(api_router_status, prefix="/api")

    return app


app = create_app()


# ── Entrypoint ─────────────────────────────────────────────────────────────
def main():
    """
    Main function to run the Uvicorn server for the rvc2mqtt application.

    Retrieves host, port, and log level from environment variables or defaults,
    then starts the Uvicorn server.
    """
    host = os.getenv("RVC2MQTT_HOST", "0.0.0.0")
    port = int(os.getenv("RVC2MQTT_PORT", "8000"))
    log_level = os.getenv("RVC2MQTT_LOG_LEVEL", "info").lower()

    logger.info(f"Starting Uvicorn server on {host}:{port} with log level '{log_level}'")
    uvicorn.run(app, host=host, port=port, log_level=log_level)


if __name__ == "__main__":
    main()
