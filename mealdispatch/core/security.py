from __future__ import annotations

import hmac
import json
from dataclasses import dataclass
from typing import Protocol

from cryptography.fernet import Fernet, InvalidToken

_TOKEN_TYPE_UNSUBSCRIBE = "unsubscribe"


class EncryptionProvider(Protocol):
    def encrypt(self, value: str) -> str:
        ...

    def decrypt(self, token: str, ttl_seconds: int | None = None) -> str:
        ...


class FernetEncryptionProvider:
    def __init__(self, key: str):
        self._fernet = Fernet(key.encode("utf-8"))

    def encrypt(self, value: str) -> str:
        return self._fernet.encrypt(value.encode("utf-8")).decode("utf-8")

    def decrypt(self, token: str, ttl_seconds: int | None = None) -> str:
        return self._fernet.decrypt(token.encode("utf-8"), ttl=ttl_seconds).decode("utf-8")


@dataclass(slots=True)
class UnsubscribeClaims:
    recipient_id: str
    email: str


@dataclass(slots=True)
class UnsubscribeTokenService:
    """Issue and verify signed one-click unsubscribe tokens."""

    encryption_provider: EncryptionProvider
    ttl_days: int = 30

    def issue(self, recipient_id: str, email: str) -> str:
        payload = json.dumps(
            {"recipient_id": recipient_id, "email": email, "type": _TOKEN_TYPE_UNSUBSCRIBE},
            sort_keys=True,
        )
        return self.encryption_provider.encrypt(payload)

    def verify(self, token: str) -> UnsubscribeClaims | None:
        """Return the token's claims, or ``None`` if it is forged, expired or malformed."""
        try:
            raw = self.encryption_provider.decrypt(token, ttl_seconds=self.ttl_days * 86400)
            payload = json.loads(raw)
        except (InvalidToken, ValueError):
            return None

        if not isinstance(payload, dict) or payload.get("type") != _TOKEN_TYPE_UNSUBSCRIBE:
            return None
        if not payload.get("recipient_id") or not payload.get("email"):
            return None
        return UnsubscribeClaims(recipient_id=str(payload["recipient_id"]), email=str(payload["email"]))


def build_unsubscribe_service() -> UnsubscribeTokenService:
    from mealdispatch.core.settings import get_settings

    settings = get_settings()
    if not settings.unsubscribe_key:
        raise ValueError("UNSUBSCRIBE_KEY must be configured to sign unsubscribe links")
    return UnsubscribeTokenService(
        encryption_provider=FernetEncryptionProvider(settings.unsubscribe_key),
        ttl_days=settings.unsubscribe_token_ttl_days,
    )


def verify_bearer_secret(authorization: str | None, expected_secret: str | None) -> bool:
    """Constant-time check of an ``Authorization: Bearer <secret>`` header.

    An unset *expected_secret* rejects every caller.
    """
    if not expected_secret or not authorization:
        return False
    scheme, _, presented = authorization.partition(" ")
    if scheme.lower() != "bearer" or not presented:
        return False
    return hmac.compare_digest(presented.strip().encode("utf-8"), expected_secret.encode("utf-8"))
