"""Identity provider backed by HS256 session tokens.

The auth gateway in front of Paperbag issues short-lived JWTs whose `sub`
claim is the user's subject. This module only verifies them.
"""

import time
from dataclasses import dataclass, field
from typing import Any

import jwt
import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Identity:
    """Authenticated caller."""

    subject: str
    claims: dict[str, Any] = field(default_factory=dict, compare=False)


class IdentityProvider:
    """Verify bearer tokens and resolve the caller's identity."""

    algorithm = "HS256"

    def __init__(
        self,
        secret: str,
        issuer: str | None = None,
        audience: str | None = None,
        leeway_seconds: int = 30,
    ):
        self.secret = secret
        self.issuer = issuer
        self.audience = audience
        self.leeway_seconds = leeway_seconds

    def get_identity(self, token: str | None) -> Identity | None:
        """Return the identity for a valid token, None for a missing or invalid one."""
        if not token or not self.secret:
            return None

        options = {"require": ["sub", "exp"], "verify_aud": self.audience is not None}
        try:
            claims = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
                leeway=self.leeway_seconds,
                options=options,
            )
        except jwt.PyJWTError as e:
            logger.info("identity.token_rejected", reason=type(e).__name__)
            return None

        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            return None
        return Identity(subject=subject, claims=claims)

    def issue_token(self, subject: str, ttl_seconds: int = 3600, **extra_claims: Any) -> str:
        """Mint a token for a subject (local development and tests)."""
        now = int(time.time())
        claims: dict[str, Any] = {"sub": subject, "iat": now, "exp": now + ttl_seconds}
        if self.issuer:
            claims["iss"] = self.issuer
        if self.audience:
            claims["aud"] = self.audience
        claims.update(extra_claims)
        return jwt.encode(claims, self.secret, algorithm=self.algorithm)
