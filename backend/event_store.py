import logging
from contextlib import contextmanager
from typing import Any, Dict, Optional, Protocol

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from models import Event, EventRegistration, SessionRegistration

logger = logging.getLogger(__name__)


class StoreError(RuntimeError):
    """Opaque upstream failure; callers report it as a server error."""


class DuplicateRegistrationError(Exception):
    """The unique constraint on a registration table rejected an insert."""


class EventStore(Protocol):
    def get_event_by_id(self, event_id: str, lock: bool = False) -> Optional[Event]: ...

    def count_public_registrations(self, event_id: str) -> int: ...

    def find_registration(self, event_id: str, email: str) -> Optional[EventRegistration]: ...

    def insert_registration(self, record: Dict[str, Any]) -> EventRegistration: ...

    def get_program_blob(self, event_id: str) -> Optional[str]: ...

    def set_program_blob(self, event_id: str, blob: Optional[str]) -> None: ...

    def find_session_registration(self, session_id: str, email: str) -> Optional[SessionRegistration]: ...

    def insert_session_registration(self, record: Dict[str, Any]) -> SessionRegistration: ...


class SqlEventStore:
    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _guard(self, action: str):
        try:
            yield
        except DuplicateRegistrationError:
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Store failure during %s: %s", action, exc)
            raise StoreError(f"{action} failed") from exc

    def get_event_by_id(self, event_id: str, lock: bool = False) -> Optional[Event]:
        with self._guard("event lookup"):
            query = self.db.query(Event).filter(Event.id == event_id)
            if lock:
                # Holds the event row until the registration insert commits.
                query = query.with_for_update()
            return query.first()

    def count_public_registrations(self, event_id: str) -> int:
        with self._guard("registration count"):
            count = (
                self.db.query(func.count(EventRegistration.id))
                .filter(EventRegistration.event_id == event_id, EventRegistration.is_public.is_(True))
                .scalar()
            )
            return int(count or 0)

    def find_registration(self, event_id: str, email: str) -> Optional[EventRegistration]:
        with self._guard("registration lookup"):
            return (
                self.db.query(EventRegistration)
                .filter(
                    EventRegistration.event_id == event_id,
                    EventRegistration.email == email,
                    EventRegistration.is_public.is_(True),
                )
                .first()
            )

    def insert_registration(self, record: Dict[str, Any]) -> EventRegistration:
        with self._guard("registration insert"):
            row = EventRegistration(**record)
            self.db.add(row)
            try:
                self.db.commit()
            except IntegrityError as exc:
                self.db.rollback()
                raise DuplicateRegistrationError(record.get("email")) from exc
            self.db.refresh(row)
            return row

    def get_program_blob(self, event_id: str) -> Optional[str]:
        with self._guard("program read"):
            row = self.db.query(Event.program).filter(Event.id == event_id).first()
            return row[0] if row else None

    def set_program_blob(self, event_id: str, blob: Optional[str]) -> None:
        with self._guard("program write"):
            updated = self.db.query(Event).filter(Event.id == event_id).update({Event.program: blob})
            if not updated:
                self.db.rollback()
                raise StoreError(f"Event {event_id} not found")
            self.db.commit()

    def find_session_registration(self, session_id: str, email: str) -> Optional[SessionRegistration]:
        with self._guard("session registration lookup"):
            return (
                self.db.query(SessionRegistration)
                .filter(SessionRegistration.session_id == session_id, SessionRegistration.email == email)
                .first()
            )

    def insert_session_registration(self, record: Dict[str, Any]) -> SessionRegistration:
        with self._guard("session registration insert"):
            row = SessionRegistration(**record)
            self.db.add(row)
            try:
                self.db.commit()
            except IntegrityError as exc:
                self.db.rollback()
                raise DuplicateRegistrationError(record.get("email")) from exc
            self.db.refresh(row)
            return row
