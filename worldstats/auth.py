import time
from typing import Any, Dict, Optional

import jwt
from pydantic import BaseModel, Field, ValidationError, field_validator

from .config import Settings, get_settings
from .errors import UnauthorizedError


class AdminClaims(BaseModel):
    """Pydantic model for the JWT claims accepted on admin endpoints."""

    sub: str
    name: Optional[str] = None
    role: str = Field(default="viewer")
    exp: int

    @field_validator("role", mode="before")
    @classmethod
    def normalize_role(cls, v):
        role = v.strip().lower() if isinstance(v, str) else "viewer"
        role_map = {
            "admin": "admin",
            "administrator": "admin",
            "superuser": "admin",
        }
        return role_map.get(role, "viewer")

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class AuthService:
    """JWT guard for admin-only endpoints."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()

    def _decode_jwt(self, token: str) -> dict:
        """Decode and validate a JWT (HS256)."""
        options = {"require": ["exp"], "verify_exp": True}
        kwargs: Dict[str, Any] = {"algorithms": ["HS256"]}
        if self.settings.jwt_issuer:
            kwargs["issuer"] = self.settings.jwt_issuer
        if self.settings.jwt_audience:
            kwargs["audience"] = self.settings.jwt_audience
        return jwt.decode(token, self.settings.jwt_secret, options=options, **kwargs)

    def default_claims(self) -> AdminClaims:
        # Local dev identity used when auth is disabled
        return AdminClaims(sub="admin@localhost", name="Local Admin", role="admin", exp=int(time.time()) + 3600)

    def authenticate(self, header: str) -> AdminClaims:
        """Validate an Authorization header value and return admin claims."""
        if self.settings.disable_auth:
            return self.default_claims()

        if not header.startswith("Bearer "):
            raise UnauthorizedError("Missing or invalid Authorization header")

        token = header.split(" ", 1)[1].strip()
        try:
            claims = AdminClaims.model_validate(self._decode_jwt(token))
        except (jwt.PyJWTError, ValidationError) as e:
            raise UnauthorizedError(f"Invalid token: {e}") from e

        if not claims.is_admin:
            raise UnauthorizedError("Admin role required")
        return claims
