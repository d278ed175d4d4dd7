"""
Burned item endpoints - list, manual burn, unburn.
"""

from fastapi import APIRouter

from src.api.deps import Burns, CurrentUser
from src.engines.srs.burn_controller import BurnedItems, BurnResult
from src.engines.srs.progress_store import ProgressSnapshot
from src.schemas.progress import BurnRequest

router = APIRouter()


@router.get("", response_model=BurnedItems)
async def list_burned_items(user: CurrentUser, burns: Burns):
    return await burns.list_burned(user)


@router.post("", response_model=BurnResult)
async def burn_item(data: BurnRequest, user: CurrentUser, burns: Burns):
    """Mark an item as burned. Burning a burned item changes nothing."""
    return await burns.burn(user, data.item_id, data.kind)


@router.post("/unburn", response_model=ProgressSnapshot)
async def unburn_item(data: BurnRequest, user: CurrentUser, burns: Burns):
    """Send a record back to the first stage, due again in four hours."""
    return await burns.unburn(user, data.item_id, data.kind)
