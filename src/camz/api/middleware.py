"""Middleware: API key authentication."""

from __future__ import annotations

import secrets
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, HTTPException, Query, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

if TYPE_CHECKING:
    from camz.runtime import AppRuntime

_bearer_scheme = HTTPBearer(auto_error=False)


def _matches(candidate: str | None, expected: str) -> bool:
    if candidate is None:
        return False
    return secrets.compare_digest(candidate.encode(), expected.encode())


async def verify_api_key(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
    access_token: Annotated[str | None, Query(include_in_schema=False)] = None,
) -> None:
    """Check the caller's token against the configured API key.

    If no API key is configured (CAMZ_API_KEY not set), all requests pass.
    Otherwise the key is accepted as 'Authorization: Bearer <key>' or, for
    the preview image which a plain <img> tag loads, as '?access_token=<key>'.
    """
    runtime: AppRuntime = request.app.state.runtime
    api_key = runtime.settings.api_key
    if api_key is None:
        return

    bearer = credentials.credentials if credentials is not None else None
    if not (_matches(bearer, api_key) or _matches(access_token, api_key)):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
            headers={"WWW-Authenticate": "Bearer"},
        )
