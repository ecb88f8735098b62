"""Dispatch router — the single RPC-style endpoint used by the field app.

Endpoints:
    POST   /api/dispatch   {action, payload} → action result (JSON)
    POST   /               same, for clients posting to the service root
"""

from fastapi import APIRouter, Depends, Request
from fastapi.encoders import jsonable_encoder

from cemtrack.deps import get_dispatcher
from cemtrack.schemas.dispatch import DispatchRequest
from cemtrack.services.dispatcher import Dispatcher

router = APIRouter(tags=["dispatch"])


@router.post("/", include_in_schema=False)
@router.post("/api/dispatch")
async def dispatch(
    body: DispatchRequest,
    request: Request,
    dispatcher: Dispatcher = Depends(get_dispatcher),
):
    """Run one ledger action.

    Errors are rendered by the exception handlers as
    ``{"error": ..., "code": ..., "debug_action": <action>}``.
    """
    request.state.action = body.action
    result = await dispatcher.dispatch(body.action, body.payload)
    return jsonable_encoder(result)
