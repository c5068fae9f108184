"""Request bodies for the HTTP API."""

from uuid import UUID

from pydantic import BaseModel


class UserInitRequest(BaseModel):
    """Body of POST /api/user/init."""

    initData: str | None = None  # noqa: N815


class RateRequest(BaseModel):
    """Body of POST /api/rate."""

    tarologistId: UUID  # noqa: N815
    sessionId: UUID  # noqa: N815
    rating: int | float | None = None


class SpreadRequest(BaseModel):
    """Body of POST /api/spreads."""

    clientId: UUID  # noqa: N815
    spreadType: str  # noqa: N815
    cards: list[str]
    providerId: UUID | None = None  # noqa: N815
