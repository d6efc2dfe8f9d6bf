import logging
import os
from typing import Dict

from sqlalchemy import text
from sqlalchemy.orm import Session

from auth import get_password_hash
from models import Event, User, UserRole
from program_translations import ProgramDecodeError, decode_program_blob, serialize_program, upgrade_stored_program

logger = logging.getLogger(__name__)


def _table_exists(conn, table_name: str) -> bool:
    result = conn.execute(
        text(
            """
            SELECT 1 FROM information_schema.tables
            WHERE table_name = :table
            """
        ),
        {"table": table_name}
    ).fetchone()
    return bool(result)


def _column_exists(conn, table_name: str, column_name: str) -> bool:
    result = conn.execute(
        text(
            """
            SELECT 1 FROM information_schema.columns
            WHERE table_name = :table AND column_name = :column
            """
        ),
        {"table": table_name, "column": column_name}
    ).fetchone()
    return bool(result)


def _constraint_exists(conn, table_name: str, constraint_name: str) -> bool:
    result = conn.execute(
        text(
            """
            SELECT 1 FROM information_schema.table_constraints
            WHERE table_name = :table AND constraint_name = :constraint
            """
        ),
        {"table": table_name, "constraint": constraint_name}
    ).fetchone()
    return bool(result)


def ensure_events_columns(engine):
    with engine.begin() as conn:
        if not _table_exists(conn, "events"):
            return
        if not _column_exists(conn, "events", "program"):
            conn.execute(text("ALTER TABLE events ADD COLUMN program TEXT"))
        if not _column_exists(conn, "events", "is_public"):
            conn.execute(text("ALTER TABLE events ADD COLUMN is_public BOOLEAN NOT NULL DEFAULT FALSE"))
        if not _column_exists(conn, "events", "max_attendees"):
            conn.execute(text("ALTER TABLE events ADD COLUMN max_attendees INTEGER"))


def ensure_session_registrations_event_id_column(engine):
    # Early session registrations were written before the table had event_id.
    with engine.begin() as conn:
        if _table_exists(conn, "session_registrations") and not _column_exists(conn, "session_registrations", "event_id"):
            conn.execute(text("ALTER TABLE session_registrations ADD COLUMN event_id VARCHAR(36)"))


def ensure_registration_constraints(engine):
    with engine.begin() as conn:
        if _table_exists(conn, "event_registrations") and not _constraint_exists(
            conn, "event_registrations", "uq_event_registrations_event_email_public"
        ):
            conn.execute(
                text(
                    """
                    ALTER TABLE event_registrations
                    ADD CONSTRAINT uq_event_registrations_event_email_public
                    UNIQUE (event_id, email, is_public)
                    """
                )
            )
        if _table_exists(conn, "session_registrations") and not _constraint_exists(
            conn, "session_registrations", "uq_session_registrations_session_email"
        ):
            conn.execute(
                text(
                    """
                    ALTER TABLE session_registrations
                    ADD CONSTRAINT uq_session_registrations_session_email
                    UNIQUE (session_id, email)
                    """
                )
            )


def normalize_legacy_programs(db: Session, dry_run: bool = False) -> Dict[str, int]:
    """Rewrite flat-string program blobs into the multilingual shape.

    Unreadable blobs are left untouched. Disabled programs keep their items.
    With ``dry_run`` the counts are computed and nothing is written.
    """
    stats = {"converted": 0, "unreadable": 0, "unchanged": 0}
    events = db.query(Event).filter(Event.program.isnot(None)).order_by(Event.id.asc()).all()
    for event in events:
        try:
            decoded = decode_program_blob(event.program)
        except ProgramDecodeError as exc:
            logger.warning("Event %s has an unreadable program blob: %s", event.id, exc)
            stats["unreadable"] += 1
            continue
        upgraded = upgrade_stored_program(decoded)
        if upgraded is None:
            stats["unchanged"] += 1
            continue
        stats["converted"] += 1
        if not dry_run:
            event.program = serialize_program(upgraded)
    if not dry_run:
        db.commit()
    return stats


def ensure_default_admin(db: Session):
    email = str(os.environ.get("DEFAULT_ADMIN_EMAIL") or "").strip().lower()
    password = os.environ.get("DEFAULT_ADMIN_PASSWORD")
    if not email or not password:
        return None

    user = db.query(User).filter(User.email == email).first()
    if not user:
        user = User(
            email=email,
            name="Administrator",
            hashed_password=get_password_hash(password),
            role=UserRole.ADMIN,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        logger.info("Default admin created: %s", email)
    elif user.role != UserRole.ADMIN:
        user.role = UserRole.ADMIN
        db.commit()
    return user
