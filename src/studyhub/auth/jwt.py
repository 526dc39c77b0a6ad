"""HS256 verification of tokens minted by the external identity provider.

The service never issues tokens; it only checks the signature, expiry and
(optionally) issuer, and trusts the ``sub`` claim as the user id.
"""

from __future__ import annotations

from typing import Any

import jwt

from studyhub.config import get_settings


def verify_token(token: str) -> dict[str, Any]:
    """Decode and verify a bearer token.

    Raises:
        jwt.InvalidTokenError: If the signature, expiry or issuer is wrong,
            or the token carries no subject.
    """
    settings = get_settings()
    options: dict[str, Any] = {"require": ["sub"]}
    kwargs: dict[str, Any] = {}
    if settings.jwt_issuer:
        kwargs["issuer"] = settings.jwt_issuer
        options["require"].append("iss")

    payload = jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
        options=options,
        **kwargs,
    )
    if not isinstance(payload.get("sub"), str) or not payload["sub"]:
        raise jwt.InvalidTokenError("Token subject must be a non-empty string")
    return payload
