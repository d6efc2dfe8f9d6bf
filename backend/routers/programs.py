import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from database import get_db
from event_store import SqlEventStore, StoreError
from models import Event
from program_translations import (
    BASE_LANGUAGE,
    LANGUAGES,
    ProgramValidationError,
    detect_and_normalize,
    is_supported_language,
    project_to_language,
    validate_and_persist,
)
from schemas import ProgramUpdateRequest
from security import require_event_manager

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/events/{event_id}/program")
def get_event_program(event: Event = Depends(require_event_manager)):
    return {"program": detect_and_normalize(event.program)}


@router.put("/events/{event_id}/program")
def update_event_program(
    payload: ProgramUpdateRequest,
    event: Event = Depends(require_event_manager),
    db: Session = Depends(get_db),
):
    items = [
        item.model_dump(mode="json", by_alias=True, exclude_none=True)
        for item in payload.program_items
    ]
    try:
        program = validate_and_persist(
            SqlEventStore(db),
            event.id,
            items,
            has_program=payload.has_program,
            program_text=payload.program_text,
        )
    except ProgramValidationError as exc:
        logger.info("Rejected program update for event %s: %s", event.id, exc)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "Invalid program item", "itemTitle": exc.item_title, "reason": exc.reason},
        )
    except StoreError:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to update event program")

    return {"event": {"id": event.id, "title": event.title}, "program": program}


@router.get("/events/{event_id}/program/public")
def get_public_event_program(
    event_id: str,
    lang: str = Query(default=BASE_LANGUAGE),
    db: Session = Depends(get_db),
):
    if not is_supported_language(lang):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported language; expected one of {', '.join(LANGUAGES)}",
        )
    event = db.query(Event).filter(Event.id == event_id).first()
    if not event or not event.is_public:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")
    return {"program": project_to_language(detect_and_normalize(event.program), lang)}
