"""Tests for Telegram WebApp init data verification."""

from urllib.parse import parse_qsl, urlencode

from tarot_chat.adapters.telegram_init_data import TelegramInitDataVerifier
from tests.conftest import BOT_TOKEN, sign_init_data

USER = {"id": 4242, "first_name": "Anna", "last_name": "K", "username": "anna_k"}


def test_valid_init_data_yields_identity() -> None:
    verifier = TelegramInitDataVerifier(bot_token=BOT_TOKEN)

    identity = verifier.verify(sign_init_data(USER))

    assert identity is not None
    assert identity.user_id == 4242
    assert identity.display_name == "Anna K"
    assert identity.username == "anna_k"


def test_display_name_falls_back_to_username() -> None:
    verifier = TelegramInitDataVerifier(bot_token=BOT_TOKEN)

    identity = verifier.verify(sign_init_data({"id": 1, "username": "solo"}))

    assert identity is not None
    assert identity.display_name == "solo"


def test_tampered_init_data_is_rejected() -> None:
    verifier = TelegramInitDataVerifier(bot_token=BOT_TOKEN)
    params = dict(parse_qsl(sign_init_data(USER)))
    params["user"] = params["user"].replace("4242", "1")

    assert verifier.verify(urlencode(params)) is None


def test_wrong_bot_token_is_rejected() -> None:
    verifier = TelegramInitDataVerifier(bot_token="another-token")

    assert verifier.verify(sign_init_data(USER)) is None


def test_missing_hash_or_data_is_rejected() -> None:
    verifier = TelegramInitDataVerifier(bot_token=BOT_TOKEN)
    params = dict(parse_qsl(sign_init_data(USER)))
    params.pop("hash")

    assert verifier.verify(urlencode(params)) is None
    assert verifier.verify("") is None
    assert verifier.verify(None) is None


def test_stale_init_data_is_rejected_when_max_age_set() -> None:
    verifier = TelegramInitDataVerifier(
        bot_token=BOT_TOKEN, max_age_seconds=60, now=lambda: 10_000.0
    )

    assert verifier.verify(sign_init_data(USER, auth_date=9_990)) is not None
    assert verifier.verify(sign_init_data(USER, auth_date=1_000)) is None
