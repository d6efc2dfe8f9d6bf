from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from database import get_db
from models import Event
from schemas import PublicEventResponse

router = APIRouter()


@router.get("/")
def root():
    return {"message": "PanelEvent API is running"}


@router.get("/health")
def health_check():
    return {"status": "healthy"}


@router.get("/events/by-slug/{slug}", response_model=PublicEventResponse)
def get_public_event_by_slug(slug: str, db: Session = Depends(get_db)):
    event = db.query(Event).filter(Event.slug == slug).first()
    # Private events are reported exactly like missing ones.
    if not event or not event.is_public:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")
    return PublicEventResponse.model_validate(event)
