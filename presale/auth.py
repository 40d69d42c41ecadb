"""
Presale Admin - Authentication Module
=====================================
Single-admin password gate for the write endpoints.

Security model:
- Exactly one admin credential, stored as a bcrypt hash in the 'admins' collection
- The plaintext password comes from the ADMIN_PASSWORD environment variable
- JWT tokens (claim {"admin": true}, 1 hour expiry) issued on successful login
- Protected routes require "Authorization: Bearer <token>"
- Stateless: no session store, no revocation list, no lockout

Bootstrap flow:
    1. Operator sets ADMIN_PASSWORD and JWT_SECRET, then calls GET /api/init-admin
    2. If no initialized credential exists, ADMIN_PASSWORD is hashed and stored
    3. Further calls are no-ops while the credential stays initialized

Login flow:
    1. POST /api/authenticate with {"password": ...}
    2. Password verified against the stored hash
    3. JWT token returned on success
"""

import logging
from datetime import datetime, timedelta, timezone

import bcrypt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from presale.config import MIN_ADMIN_PASSWORD_LENGTH, require_admin_password, require_jwt_secret
from presale.errors import AuthError, ConfigError, ValidationError
from presale.store import PresaleStore

logger = logging.getLogger("presale.auth")

JWT_ALGORITHM = "HS256"

# bcrypt only looks at the first 72 bytes and newer releases reject longer input
BCRYPT_MAX_BYTES = 72

# Security scheme for FastAPI dependency injection
security = HTTPBearer(auto_error=False)


class AuthManager:
    """
    Bootstraps the admin credential and manages the JWT token lifecycle.

    Attributes:
        store:  Document store holding the admin credential.
        config: Merged configuration dict (see config.py).
    """

    def __init__(self, store: PresaleStore, config: dict):
        self.store = store
        self.config = config

    @property
    def token_ttl(self) -> timedelta:
        return timedelta(minutes=self.config["auth"]["token_ttl_minutes"])

    # -- Bootstrap --------------------------------------------------------------

    def initialize_admin(self) -> str:
        """
        Make sure exactly one initialized admin credential exists.

        Already initialized -> no-op. Otherwise ADMIN_PASSWORD is hashed
        with a fresh salt and either written into the existing record or
        stored as a new one.

        Returns:
            "unchanged", "updated" or "created".

        Raises:
            ConfigError: If ADMIN_PASSWORD is missing or too short.
            StoreError:  If the database cannot be read or written.
        """
        self.store.connection.ensure_connected()

        existing = self.store.get_admin()
        if existing and existing.get("initialized"):
            logger.debug("Admin already initialized")
            return "unchanged"

        password = require_admin_password(self.config)
        if len(password.encode("utf-8")) > BCRYPT_MAX_BYTES:
            raise ConfigError(f"ADMIN_PASSWORD must be at most {BCRYPT_MAX_BYTES} bytes.")
        password_hash = self.hash_password(password)

        if existing:
            self.store.update_admin(existing["_id"], password_hash)
            logger.info("Admin credential re-hashed and marked initialized")
            return "updated"

        self.store.create_admin(password_hash)
        logger.info("Admin credential created")
        return "created"

    def hash_password(self, password: str) -> str:
        rounds = self.config["auth"]["bcrypt_rounds"]
        return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds)).decode("utf-8")

    # -- Login ------------------------------------------------------------------

    def authenticate(self, password: str | None) -> str:
        """
        Exchange the admin password for a JWT token.

        Args:
            password: The plaintext password supplied by the caller.

        Returns:
            A signed JWT token valid for one hour.

        Raises:
            ValidationError: If the password is missing or shorter than 8 chars.
                             The store is not consulted in that case.
            AuthError:       If the admin is not initialized or the password is wrong.
        """
        if not password or len(password) < MIN_ADMIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {MIN_ADMIN_PASSWORD_LENGTH} characters"
            )

        admin = self.store.get_admin()
        if not admin or not admin.get("initialized") or not admin.get("password"):
            raise AuthError("Admin account not initialized")

        encoded = password.encode("utf-8")
        if len(encoded) > BCRYPT_MAX_BYTES:
            raise AuthError("Invalid password")

        if not bcrypt.checkpw(encoded, admin["password"].encode("utf-8")):
            raise AuthError("Invalid password")

        return self.create_token()

    # -- Tokens -----------------------------------------------------------------

    def create_token(self, issued_at: datetime | None = None) -> str:
        """Generate a JWT token expiring one TTL after issued_at (default: now)."""
        issued_at = issued_at or datetime.now(timezone.utc)
        payload = {
            "admin": True,
            "iat": issued_at,
            "exp": issued_at + self.token_ttl,
        }
        return jwt.encode(payload, require_jwt_secret(self.config), algorithm=JWT_ALGORITHM)

    def verify_token(self, token: str) -> dict:
        """
        Verify a JWT token's signature and expiry.

        Returns:
            The decoded claims.

        Raises:
            AuthError: 403 if the token is invalid or expired.
        """
        try:
            return jwt.decode(
                token,
                require_jwt_secret(self.config),
                algorithms=[JWT_ALGORITHM],
            )
        except JWTError:
            raise AuthError("Invalid token", status_code=403)


def require_auth(auth_manager: AuthManager):
    """
    Create a FastAPI dependency that enforces authentication.

    Usage in routes:
        @router.post("/presale-end", dependencies=[Depends(require_auth(auth_mgr))])
        def save_presale_end(...): ...

    Args:
        auth_manager: The AuthManager instance to use for token verification.

    Returns:
        A FastAPI dependency function returning the token claims.
    """
    async def _verify(
        credentials: HTTPAuthorizationCredentials | None = Depends(security),
    ) -> dict:
        if credentials is None or not credentials.credentials:
            raise AuthError("Unauthorized")
        return auth_manager.verify_token(credentials.credentials)

    return _verify
