from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from tagstream.api.dependencies import get_session
from tagstream.api.schemas import FeedResponse, StreamRequest
from tagstream.core.session import FeedResult, Session

router = APIRouter(prefix="/turns", tags=["turns"])


def _validate_turn_id(turn_id: str) -> str:
    if not turn_id.strip():
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="turn_id must not be blank")
    return turn_id


def _to_response(turn_id: str, result: FeedResult) -> FeedResponse:
    return FeedResponse(
        turn_id=turn_id,
        nodes=result.nodes,
        dispatched=[node.id for node in result.dispatched],
    )


@router.post("/{turn_id}/stream", response_model=FeedResponse)
async def stream(
    turn_id: str,
    body: StreamRequest,
    session: Session = Depends(get_session),
) -> FeedResponse:
    """Decode the cumulative turn text and queue every newly ready instruction."""
    _validate_turn_id(turn_id)
    return _to_response(turn_id, session.feed(turn_id, body.text))


@router.post("/{turn_id}/finish", response_model=FeedResponse)
async def finish(
    turn_id: str,
    session: Session = Depends(get_session),
) -> FeedResponse:
    """Flush text held back at the end of the turn."""
    _validate_turn_id(turn_id)
    return _to_response(turn_id, session.finish_turn(turn_id))
