"""
API v1 router configuration
"""
from fastapi import APIRouter, Depends

from stockroom.api.deps import get_actor_id
from stockroom.api.v1.endpoints import cycle_counts, inventory, labels, lookup, sage, scan, transfer

# Main API router; every route requires an actor id
api_router = APIRouter(dependencies=[Depends(get_actor_id)])

# Include endpoint routers
api_router.include_router(
    inventory.router,
    prefix="/inventory",
    tags=["inventory"]
)

api_router.include_router(
    cycle_counts.router,
    prefix="/cycle-counts",
    tags=["cycle-counts"]
)

api_router.include_router(
    scan.router,
    prefix="/scan",
    tags=["scan"]
)

api_router.include_router(
    transfer.router,
    prefix="/transfer",
    tags=["transfer"]
)

api_router.include_router(
    labels.router,
    prefix="/labels",
    tags=["labels"]
)

api_router.include_router(
    lookup.router,
    prefix="/lookup",
    tags=["lookup"]
)

api_router.include_router(
    sage.router,
    prefix="/sage",
    tags=["sage"]
)
