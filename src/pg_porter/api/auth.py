"""Bearer-token authentication dependency."""

import secrets

from fastapi import Header, Request

from pg_porter.errors import AuthError


async def require_token(request: Request, authorization: str | None = Header(None)) -> None:
    """Reject the request unless it carries ``Authorization: Bearer <api.token>``.

    With no ``api.token`` configured every request is accepted (local use).
    """
    token = request.app.state.config.api.token
    if not token:
        return
    scheme, _, supplied = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not secrets.compare_digest(supplied.strip(), token):
        raise AuthError("Not authenticated")
