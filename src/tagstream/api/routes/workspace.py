from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from tagstream.api.dependencies import get_session
from tagstream.api.schemas import DetectionSchema, OperationStatusResponse, WorkspaceStatusResponse
from tagstream.core.followups import build_execution_error_prompt
from tagstream.core.session import Session

router = APIRouter(tags=["workspace"])


@router.get("/operations/{node_id}", response_model=OperationStatusResponse)
async def operation_status(
    node_id: str,
    session: Session = Depends(get_session),
) -> OperationStatusResponse:
    return OperationStatusResponse(id=node_id, status=session.get_status(node_id))


@router.get("/status", response_model=WorkspaceStatusResponse)
async def workspace_status(
    session: Session = Depends(get_session),
) -> WorkspaceStatusResponse:
    ledger = session.ledger
    error = ledger.execution_error
    return WorkspaceStatusResponse(
        status_line=ledger.status_line,
        is_processing=ledger.is_processing,
        pending=len(session.queue.pending),
        execution_error=error,
        followup=build_execution_error_prompt(error) if error is not None else None,
        active_file=session.tree.active_file,
        notices=list(ledger.notices),
    )


@router.get("/detections", response_model=list[DetectionSchema])
async def detections(
    session: Session = Depends(get_session),
) -> list[DetectionSchema]:
    return [DetectionSchema.model_validate(detection) for detection in session.ledger.detections]


@router.post("/detections/{detection_id}/dismiss", response_model=DetectionSchema)
async def dismiss_detection(
    detection_id: str,
    session: Session = Depends(get_session),
) -> DetectionSchema:
    if not session.ledger.dismiss_detection(detection_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown detection: {detection_id}")
    detection = next(d for d in session.ledger.detections if d.id == detection_id)
    return DetectionSchema.model_validate(detection)


@router.get("/files", response_model=list[str])
async def files(
    session: Session = Depends(get_session),
) -> list[str]:
    """Sorted paths of the sandbox files not excluded by the ignore rules."""
    return sorted(await session.snapshot())
