from __future__ import annotations

import logging
from datetime import datetime, timezone

from database import Base, engine, get_db
from migrations import (
    ensure_default_admin,
    ensure_events_columns,
    ensure_registration_constraints,
    ensure_session_registrations_event_id_column,
    normalize_legacy_programs,
)
from models import SystemConfig

logger = logging.getLogger(__name__)

MIGRATION_MARKER_KEY = "migration:backend_bootstrap:v1"


def _supports_information_schema() -> bool:
    return engine.dialect.name == "postgresql"


def has_bootstrap_marker() -> bool:
    db = next(get_db())
    try:
        marker = db.query(SystemConfig).filter(SystemConfig.key == MIGRATION_MARKER_KEY).first()
        return marker is not None
    finally:
        db.close()


def set_bootstrap_marker() -> None:
    db = next(get_db())
    try:
        marker = db.query(SystemConfig).filter(SystemConfig.key == MIGRATION_MARKER_KEY).first()
        value = datetime.now(timezone.utc).isoformat()
        if marker:
            marker.value = value
        else:
            db.add(SystemConfig(key=MIGRATION_MARKER_KEY, value=value))
        db.commit()
    finally:
        db.close()


def clear_bootstrap_marker() -> bool:
    db = next(get_db())
    try:
        marker = db.query(SystemConfig).filter(SystemConfig.key == MIGRATION_MARKER_KEY).first()
        if not marker:
            return False
        db.delete(marker)
        db.commit()
        return True
    finally:
        db.close()


def ensure_schema() -> None:
    Base.metadata.create_all(bind=engine)
    db = next(get_db())
    try:
        ensure_default_admin(db)
    finally:
        db.close()


def normalize_stored_programs(dry_run: bool = False) -> dict:
    db = next(get_db())
    try:
        stats = normalize_legacy_programs(db, dry_run=dry_run)
    finally:
        db.close()
    logger.info(
        "Program blobs%s: %d converted, %d unchanged, %d unreadable.",
        " (dry run)" if dry_run else "",
        stats["converted"],
        stats["unchanged"],
        stats["unreadable"],
    )
    return stats


def run_bootstrap_migrations(normalize_programs: bool = True) -> None:
    if _supports_information_schema():
        ensure_events_columns(engine)
        ensure_session_registrations_event_id_column(engine)
    else:
        logger.info("Dialect %s: skipping column checks, relying on create_all.", engine.dialect.name)

    Base.metadata.create_all(bind=engine)

    if _supports_information_schema():
        ensure_registration_constraints(engine)

    db = next(get_db())
    try:
        ensure_default_admin(db)
    finally:
        db.close()

    if normalize_programs:
        normalize_stored_programs()
