"""
Presale Admin - FastAPI Application
===================================
Creates and configures the FastAPI web application.

Responsibilities:
    - Create the FastAPI app instance with CORS and metadata
    - Build the connection manager, store and auth manager
    - Register the /api routes
    - Render presale.errors exceptions and request validation failures
      as {"message": ...} JSON bodies
    - Try the database once at startup and close the client on shutdown
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Callable

import anyio.to_thread
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo import MongoClient

from presale.auth import AuthManager
from presale.config import ConfigManager
from presale.database import ConnectionManager
from presale.errors import PresaleError, StoreConnectionError
from presale.routes import create_router
from presale.store import PresaleStore

logger = logging.getLogger("presale.main")


def create_app(
    config: dict | None = None,
    client_factory: Callable[..., MongoClient] = MongoClient,
) -> FastAPI:
    """
    Application factory: create and configure the FastAPI instance.

    Args:
        config:         Merged configuration dict. If None, it is loaded
                        with ConfigManager from the project directory.
        client_factory: Builds the MongoDB client (tests pass mongomock).

    Returns:
        Configured FastAPI application ready to run with uvicorn.
    """
    if config is None:
        project_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
        config = ConfigManager(project_dir).load()

    # -- Initialize managers ---------------------------------------------------
    db_config = config["database"]
    connection = ConnectionManager(
        db_config["url"],
        db_config["name"],
        timeout_ms=db_config["timeout_ms"],
        client_factory=client_factory,
    )
    store = PresaleStore(connection)
    auth_manager = AuthManager(store, config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            await anyio.to_thread.run_sync(connection.ensure_connected)
        except StoreConnectionError:
            # Requests retry the connection on their own
            logger.warning("Starting without a database connection")
        yield
        connection.close()

    # -- Create FastAPI app ----------------------------------------------------
    app = FastAPI(
        title="Presale Admin",
        description="Administrative data backend for the presale website",
        version="1.0.0",
        docs_url="/docs",
        redoc_url=None,
        lifespan=lifespan,
    )

    # -- CORS middleware -------------------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config["web"]["cors_origins"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -- Store managers on app state -------------------------------------------
    app.state.config = config
    app.state.connection = connection
    app.state.store = store
    app.state.auth_manager = auth_manager

    # -- Error rendering -------------------------------------------------------
    @app.exception_handler(PresaleError)
    async def presale_error_handler(request: Request, exc: PresaleError):
        if not exc.public:
            logger.error(
                "%s %s failed: %s", request.method, request.url.path, exc.message,
                exc_info=exc,
            )
            return JSONResponse(status_code=500, content={"message": "Server error"})

        content = {"message": exc.message}
        if exc.data is not None:
            content["data"] = exc.data
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        details = []
        for err in exc.errors():
            field = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
            details.append(f"{field}: {err.get('msg')}" if field else str(err.get("msg")))
        message = "Invalid request body"
        if details:
            message = f"{message}: {'; '.join(details)}"
        return JSONResponse(status_code=400, content={"message": message})

    # -- Register API routes ---------------------------------------------------
    app.include_router(create_router(
        auth_manager=auth_manager,
        store=store,
        config=config,
    ))

    return app
