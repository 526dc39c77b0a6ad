"""Test helpers shared by unit and integration tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt

from studyhub.config import get_settings
from studyhub.db.models import Notification

USER_ID = "user-7f3a"


class RecordingSink:
    """Notification sink that keeps what it was given."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.published: list[Notification] = []

    async def publish(self, notification: Notification) -> None:
        if self.fail:
            raise ConnectionError("sink offline")
        self.published.append(notification)

    @property
    def subtypes(self) -> list[str]:
        return [n.subtype for n in self.published]


def make_token(user_id: str = USER_ID, secret: str | None = None, expires_in: int = 3600) -> str:
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload = {"sub": user_id, "iat": now, "exp": now + timedelta(seconds=expires_in)}
    if settings.jwt_issuer:
        payload["iss"] = settings.jwt_issuer
    return jwt.encode(payload, secret or settings.jwt_secret, algorithm=settings.jwt_algorithm)


def auth_headers(user_id: str = USER_ID) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id)}"}
