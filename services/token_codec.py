"""
Signed, time-bounded tokens (JWT via PyJWT).

One codec instance is built from JWTSettings at startup and shared by every
service. It signs with RS256 when a key pair is configured, HS256 otherwise.

Expiry is checked against the injected clock rather than PyJWT's own
``time.time()`` so that services and tests agree on what "now" is.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Optional

import jwt

from config import JWTSettings
from errors import TokenExpiredError, TokenMalformedError
from shared.datetime_utils import Clock, utc_now
from shared.generators import generate_secure_token
from shared.logging import get_logger

log = get_logger(__name__)

PURPOSE_ACCESS = "access"
PURPOSE_REFRESH = "refresh"
PURPOSE_SESSION = "session"
PURPOSE_VERIFICATION = "verification"
PURPOSE_RESET = "reset"

_RESERVED_CLAIMS = {"iss", "aud", "sub", "iat", "exp", "jti", "purpose"}


@dataclass(frozen=True)
class TokenClaims:
    subject: str
    purpose: Optional[str]
    issued_at: datetime
    expires_at: datetime
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def role(self) -> Optional[str]:
        return self.extra.get("role")


class TokenCodec:
    def __init__(self, settings: JWTSettings, clock: Clock = utc_now) -> None:
        self._issuer = settings.jwt_issuer
        self._audience = settings.jwt_audience
        self._clock = clock
        if settings.use_rs256:
            # Keys provided via env may carry literal \n sequences
            self._algorithm = "RS256"
            self._signing_key = settings.jwt_private_key.replace("\\n", "\n")
            self._verify_key = settings.jwt_public_key.replace("\\n", "\n")
        else:
            if not settings.jwt_secret:
                raise RuntimeError(
                    "JWT_SECRET must be set when RS256 keys are not provided"
                )
            self._algorithm = "HS256"
            self._signing_key = settings.jwt_secret
            self._verify_key = settings.jwt_secret

    def issue(
        self,
        subject: str,
        purpose: Optional[str] = None,
        *,
        ttl: int,
        **claims: Any,
    ) -> str:
        """Sign a token for *subject* that expires *ttl* seconds from now.

        Every token carries a random ``jti`` so two tokens issued in the same
        second for the same subject never collide.
        """
        now = self._clock()
        payload: dict[str, Any] = {
            **claims,
            "iss": self._issuer,
            "aud": self._audience,
            "sub": str(subject),
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=ttl)).timestamp()),
            "jti": generate_secure_token(16),
        }
        if purpose is not None:
            payload["purpose"] = purpose
        return jwt.encode(payload, self._signing_key, algorithm=self._algorithm)

    def verify(
        self, token: Optional[str], purposes: Optional[Iterable[str]] = None
    ) -> TokenClaims:
        """Decode *token*, raising TokenExpiredError or TokenMalformedError.

        When *purposes* is given, the token's ``purpose`` claim must be one of
        them.
        """
        if not token:
            raise TokenMalformedError("Token is missing.")
        try:
            payload = jwt.decode(
                token,
                self._verify_key,
                algorithms=[self._algorithm],
                audience=self._audience,
                issuer=self._issuer,
                options={
                    "verify_exp": False,
                    "verify_iat": False,
                    "require": ["exp", "iat", "sub"],
                },
            )
        except jwt.InvalidTokenError as exc:
            log.debug("token_rejected", reason=str(exc))
            raise TokenMalformedError("Invalid token.") from exc

        expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
        if self._clock() >= expires_at:
            raise TokenExpiredError("Token has expired.")

        purpose = payload.get("purpose")
        if purposes is not None and purpose not in set(purposes):
            log.debug("token_rejected", reason="purpose", purpose=purpose)
            raise TokenMalformedError("Invalid token.")

        return TokenClaims(
            subject=str(payload["sub"]),
            purpose=purpose,
            issued_at=datetime.fromtimestamp(int(payload["iat"]), tz=timezone.utc),
            expires_at=expires_at,
            extra={k: v for k, v in payload.items() if k not in _RESERVED_CLAIMS},
        )
