"""
Shared request dependencies
"""
from typing import AsyncIterator, Optional

import httpx
from fastapi import Header, HTTPException


async def get_actor_id(x_actor_id: Optional[str] = Header(None, alias="X-Actor-Id")) -> str:
    """Caller identity, threaded explicitly into every write"""
    actor_id = (x_actor_id or "").strip()
    if not actor_id:
        raise HTTPException(
            status_code=401,
            detail={"message": "Unauthorized", "error_code": "MISSING_ACTOR"},
        )
    return actor_id


async def get_http_client() -> AsyncIterator[httpx.AsyncClient]:
    """Outbound HTTP client for lookups and accounting sync"""
    async with httpx.AsyncClient(follow_redirects=True) as client:
        yield client
