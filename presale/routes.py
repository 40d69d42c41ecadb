"""
Presale Admin - REST API Routes
===============================
All HTTP API endpoints, mounted under /api.

Route groups:
    /api/init-admin     - Admin credential bootstrap (no auth)
    /api/authenticate   - Password login, returns a JWT token (no auth)
    /api/verify-token   - Token check (auth)
    /api/presale-end    - Presale end date: GET public, POST admin-only
    /api/progress-bar   - Progress percentage: GET public, POST admin-only
    /api/wallet-address - Registered wallets: GET and POST public

Every store-backed route first runs the connection dependency, so a
request after a failed dial retries the connection. Errors are raised as
presale.errors types and rendered by the handlers in main.py.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field, field_validator

from presale.auth import AuthManager, require_auth
from presale.errors import ConfigError, ValidationError
from presale.store import PresaleStore, serialize

logger = logging.getLogger("presale.routes")

PROGRESS_MIN = 0
PROGRESS_MAX = 100


# =============================================================================
# Request Models (Pydantic)
# =============================================================================

class PasswordRequest(BaseModel):
    """Login with the admin password."""
    password: str | None = Field(None, description="Admin password (min 8 chars)")

class PresaleEndRequest(BaseModel):
    """Set the presale end date/time (ISO-8601 string or Unix timestamp)."""
    endDateTime: datetime | None = None

    @field_validator("endDateTime", mode="before")
    @classmethod
    def _blank_is_missing(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

class ProgressBarRequest(BaseModel):
    """Set the progress bar value. Numeric strings are accepted."""
    value: float | str | None = None

    @field_validator("value", mode="before")
    @classmethod
    def _no_booleans(cls, v):
        if isinstance(v, bool):
            raise ValueError("value must be a number")
        return v

class WalletAddressRequest(BaseModel):
    """Register a wallet address."""
    address: str | None = Field(None, description="Wallet address, stored lowercase")


# =============================================================================
# Helpers
# =============================================================================

def clamp_progress(raw: Any) -> int | float:
    """
    Parse a progress value and clamp it into [0, 100].

    Integral results are returned as int so 42 is stored as 42, not 42.0.

    Raises:
        ValidationError: If the value is not a finite number.
    """
    if isinstance(raw, bool):
        raise ValidationError("value must be a number")
    try:
        value = float(raw.strip() if isinstance(raw, str) else raw)
    except (TypeError, ValueError):
        raise ValidationError("value must be a number")
    if not math.isfinite(value):
        raise ValidationError("value must be a number")

    value = max(PROGRESS_MIN, min(value, PROGRESS_MAX))
    return int(value) if float(value).is_integer() else value


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# =============================================================================
# Router Factory
# =============================================================================

def create_router(
    auth_manager: AuthManager,
    store: PresaleStore,
    config: dict,
) -> APIRouter:
    """
    Create and configure the API router with all endpoints.

    Args:
        auth_manager: Handles the admin bootstrap, login and JWT tokens.
        store:        Document store for all record kinds.
        config:       Merged configuration dict.

    Returns:
        Configured APIRouter with all endpoints registered.
    """
    router = APIRouter(prefix="/api")

    def _ensure_connected() -> None:
        store.connection.ensure_connected()

    connected = Depends(_ensure_connected)
    auth = Depends(require_auth(auth_manager))

    # =========================================================================
    # ADMIN / AUTH ROUTES
    # =========================================================================

    @router.get("/init-admin", response_class=PlainTextResponse)
    def init_admin():
        """
        Bootstrap the admin credential from ADMIN_PASSWORD.

        By default the caller always gets 200, whatever happened: failures
        are only logged server-side. With admin.strict_init enabled a config
        problem answers 503 and any other failure answers 500.
        """
        strict = config["admin"]["strict_init"]
        try:
            auth_manager.initialize_admin()
        except ConfigError as e:
            logger.error("Admin initialization skipped: %s", e.message)
            if strict:
                return PlainTextResponse("Admin initialization failed", status_code=503)
        except Exception:
            logger.exception("Error initializing admin")
            if strict:
                return PlainTextResponse("Admin initialization failed", status_code=500)
        return "Tried initializing admin"

    @router.post("/authenticate", dependencies=[connected])
    def authenticate(req: PasswordRequest):
        """Login with the admin password. Returns a JWT token on success."""
        return {"token": auth_manager.authenticate(req.password)}

    @router.get("/verify-token", dependencies=[auth])
    async def verify_token():
        """Confirm the bearer token is valid and not expired."""
        return {"message": "Token valid"}

    # =========================================================================
    # PRESALE END ROUTES
    # =========================================================================

    @router.post("/presale-end", dependencies=[auth, connected])
    def save_presale_end(req: PresaleEndRequest):
        """Create or update the presale end date (admin only)."""
        if req.endDateTime is None:
            raise ValidationError("endDateTime is required")

        record = store.save_presale_end(_as_utc(req.endDateTime))
        return {"message": "Presale end date saved", "data": serialize(record)}

    @router.get("/presale-end", dependencies=[connected])
    def get_presale_end():
        """Get the presale end date, or a placeholder message if unset."""
        record = store.latest_presale_end()
        return serialize(record) or {"message": "No presale end date set yet"}

    # =========================================================================
    # PROGRESS BAR ROUTES
    # =========================================================================

    @router.post("/progress-bar", dependencies=[auth, connected])
    def save_progress_bar(req: ProgressBarRequest):
        """Create or update the progress bar value, clamped to 0-100 (admin only)."""
        if req.value is None:
            raise ValidationError("value is required")

        record = store.save_progress(clamp_progress(req.value))
        return {"message": "Progress bar value saved", "data": serialize(record)}

    @router.get("/progress-bar", dependencies=[connected])
    def get_progress_bar():
        """Get the progress bar value, or a placeholder message if unset."""
        record = store.latest_progress()
        return serialize(record) or {"message": "No progress bar value set yet"}

    # =========================================================================
    # WALLET ADDRESS ROUTES
    # =========================================================================

    @router.post("/wallet-address", dependencies=[connected])
    def add_wallet_address(req: WalletAddressRequest):
        """
        Register a wallet address. Addresses are stored lowercase, so
        0xABC and 0xabc are the same wallet; a repeat answers 409.
        """
        address = (req.address or "").strip()
        if not address:
            raise ValidationError("Address is required")

        record = store.add_wallet(address.lower())
        return {"message": "Wallet address saved", "data": serialize(record)}

    @router.get("/wallet-address", dependencies=[connected])
    def list_wallet_addresses():
        """All registered wallet addresses, newest first."""
        return [serialize(r) for r in store.list_wallets()]

    return router
