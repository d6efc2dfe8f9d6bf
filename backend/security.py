from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from database import get_db
from auth import get_current_user
from models import Event, User, UserRole

MANAGER_ROLES = {UserRole.ADMIN, UserRole.ORGANIZER}


def require_organizer(user: User = Depends(get_current_user)) -> User:
    if user.role not in MANAGER_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Organizer or admin access required")
    return user


def can_manage_event(user: User, event: Event) -> bool:
    if user.role == UserRole.ADMIN:
        return True
    return user.role == UserRole.ORGANIZER and event.organizer_id == user.id


def require_event_manager(
    event_id: str,
    user: User = Depends(require_organizer),
    db: Session = Depends(get_db)
) -> Event:
    event = db.query(Event).filter(Event.id == event_id).first()
    if not event:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")
    if not can_manage_event(user, event):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed to manage this event")
    return event
