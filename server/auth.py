from __future__ import annotations

import hmac
from typing import Callable, Iterable, Optional

from fastapi import Request


Authenticator = Callable[[Request], Optional[str]]


class BearerTokenAuthenticator:
    """Accepts ``Authorization: Bearer <token>`` for any configured token.

    With no tokens configured every request is unauthenticated.
    """

    def __init__(self, tokens: Iterable[str]) -> None:
        self._tokens = tuple(token for token in tokens if token)

    def __call__(self, request: Request) -> Optional[str]:
        header = request.headers.get("Authorization", "")
        scheme, _, supplied = header.partition(" ")
        if scheme.lower() != "bearer" or not supplied:
            return None
        for index, token in enumerate(self._tokens):
            if hmac.compare_digest(token.encode("utf-8"), supplied.strip().encode("utf-8")):
                return f"token-{index}"
        return None


def client_identity(request: Request) -> str:
    """Network identity used for rate limiting: first forwarded hop, else the peer."""

    forwarded = request.headers.get("X-Forwarded-For", "")
    first = forwarded.split(",")[0].strip()
    if first:
        return first
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


__all__ = ["Authenticator", "BearerTokenAuthenticator", "client_identity"]
