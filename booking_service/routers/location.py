from typing import Any, Dict

from fastapi import APIRouter, Depends, Request

from ..dependencies import get_square_client
from ..services.square_client import SquareClient

router = APIRouter(prefix="/api/location", tags=["Location"])


@router.get("")
async def get_location(
    request: Request,
    gateway: SquareClient = Depends(get_square_client)
) -> Dict[str, Any]:
    """The configured Square location (fetched at startup, or on first use)"""
    location = getattr(request.app.state, "location", None)
    if location is None:
        location = await gateway.retrieve_location()
        request.app.state.location = location
    return location
