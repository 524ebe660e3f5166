"""Caller identity for mutating endpoints.

The gateway authenticates the user and forwards their id in a header; this
service trusts that header and never sees credentials.
"""

from __future__ import annotations

from fastapi import Header, HTTPException

ACTOR_HEADER = "X-Auth-User-Id"


async def get_actor_id(
    x_auth_user_id: str | None = Header(default=None, alias=ACTOR_HEADER),
) -> str:
    """Return the acting user id. Raises 403 when the gateway sent none."""
    actor = (x_auth_user_id or "").strip()
    if not actor:
        raise HTTPException(status_code=403, detail="forbidden")
    return actor
