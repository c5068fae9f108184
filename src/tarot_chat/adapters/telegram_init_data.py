"""Verification of Telegram WebApp init data."""

import hashlib
import hmac
import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol
from urllib.parse import parse_qsl

from tarot_chat.domain.models import VerifiedIdentity

logger = logging.getLogger(__name__)


class IdentityVerifier(Protocol):
    """Collaborator that turns signed init data into an identity."""

    def verify(self, init_data: str | None) -> VerifiedIdentity | None:
        """Return the identity, or None when the data is invalid."""


@dataclass
class TelegramInitDataVerifier(IdentityVerifier):
    """HMAC-SHA256 check of WebApp init data against the bot token."""

    bot_token: str
    max_age_seconds: int = 0
    now: Callable[[], float] = field(default=time.time, repr=False)

    def verify(self, init_data: str | None) -> VerifiedIdentity | None:
        """Validate the signature and return the embedded user."""
        if not init_data:
            return None
        params = dict(parse_qsl(init_data, keep_blank_values=True))
        received_hash = params.pop("hash", None)
        if not received_hash:
            return None
        expected = compute_hash(self.bot_token, params)
        if not hmac.compare_digest(expected, received_hash):
            logger.warning("Rejected init data with a bad signature")
            return None
        if self.max_age_seconds > 0 and not self._is_fresh(params.get("auth_date")):
            logger.warning("Rejected stale init data")
            return None
        return _parse_identity(params.get("user"))

    def _is_fresh(self, auth_date: str | None) -> bool:
        if not auth_date or not auth_date.isdigit():
            return False
        return self.now() - int(auth_date) <= self.max_age_seconds


def compute_hash(bot_token: str, params: dict[str, str]) -> str:
    """Return the hex signature Telegram computes for the given fields."""
    data_check_string = "\n".join(
        f"{key}={value}" for key, value in sorted(params.items())
    )
    secret_key = hmac.new(b"WebAppData", bot_token.encode(), hashlib.sha256).digest()
    return hmac.new(
        secret_key, data_check_string.encode(), hashlib.sha256
    ).hexdigest()


def _parse_identity(raw_user: str | None) -> VerifiedIdentity | None:
    if not raw_user:
        return None
    try:
        user = json.loads(raw_user)
    except ValueError:
        return None
    if not isinstance(user, dict) or not isinstance(user.get("id"), int):
        return None
    first_name = user.get("first_name")
    last_name = user.get("last_name")
    username = user.get("username")
    display_name = " ".join(part for part in (first_name, last_name) if part)
    return VerifiedIdentity(
        user_id=user["id"],
        display_name=display_name or username or str(user["id"]),
        username=username,
        first_name=first_name,
        last_name=last_name,
    )
