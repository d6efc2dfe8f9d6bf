import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from database import get_db
from event_store import DuplicateRegistrationError, SqlEventStore, StoreError
from models import Event
from program_translations import detect_and_normalize
from rate_limit import RateLimiter, limiter_from_env
from registration_admission import Admitted, RegistrationAdmission, RejectionReason
from schemas import (
    EventSummary,
    RegistrationAdmittedResponse,
    RegistrationCheckResponse,
    RegistrationInfo,
    SessionRegistrationRequest,
    SessionRegistrationResponse,
)

router = APIRouter()
logger = logging.getLogger(__name__)

registration_rate_limiter = limiter_from_env()

REJECTION_STATUS = {
    RejectionReason.INVALID_INPUT: status.HTTP_400_BAD_REQUEST,
    RejectionReason.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    RejectionReason.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    RejectionReason.NOT_PUBLIC: status.HTTP_404_NOT_FOUND,
    RejectionReason.DUPLICATE: status.HTTP_409_CONFLICT,
    RejectionReason.FULL: status.HTTP_409_CONFLICT,
}


def get_registration_rate_limiter() -> RateLimiter:
    return registration_rate_limiter


def _client_key(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


async def read_json_body(request: Request) -> Any:
    """Raw request body as JSON, or None when it does not parse.

    A malformed body still goes through every admission gate, rate limit first.
    """
    raw = await request.body()
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None


def _event_summary(event: Event) -> EventSummary:
    return EventSummary(id=event.id, title=event.title, slug=event.slug)


@router.post("/events/register", response_model=RegistrationAdmittedResponse)
def register_for_public_event(
    request: Request,
    payload: Any = Depends(read_json_body),
    rate_limiter: RateLimiter = Depends(get_registration_rate_limiter),
    db: Session = Depends(get_db),
):
    admission = RegistrationAdmission(SqlEventStore(db), rate_limiter)
    try:
        outcome = admission.try_register(payload, _client_key(request))
    except StoreError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred during registration",
        )

    if isinstance(outcome, Admitted):
        return RegistrationAdmittedResponse(
            message="Registration successful",
            registration_id=outcome.registration_id,
            event=_event_summary(outcome.event),
        )

    # A private event must look exactly like a missing one.
    reason = RejectionReason.NOT_FOUND if outcome.reason == RejectionReason.NOT_PUBLIC else outcome.reason
    headers = {"Retry-After": str(outcome.retry_after)} if outcome.retry_after else None
    return JSONResponse(
        status_code=REJECTION_STATUS[outcome.reason],
        content={"detail": outcome.detail, "reason": reason.value},
        headers=headers,
    )


@router.get("/events/{event_id}/check-registration", response_model=RegistrationCheckResponse)
def check_registration(
    event_id: str,
    email: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
):
    if not email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email is required")

    store = SqlEventStore(db)
    try:
        event = store.get_event_by_id(event_id)
        if not event:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")
        registration = store.find_registration(event.id, email)
    except StoreError:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Registration lookup failed")

    if not registration:
        return RegistrationCheckResponse(is_registered=False, message="Not registered for this event")

    return RegistrationCheckResponse(
        is_registered=True,
        registration=RegistrationInfo(
            id=registration.id,
            first_name=registration.first_name,
            last_name=registration.last_name,
            email=registration.email,
            registered_at=registration.created_at,
        ),
        event=_event_summary(event),
    )


def _find_session_item(event: Event, session_id: str) -> Optional[dict]:
    program = detect_and_normalize(event.program)
    for item in program.get("programItems") or []:
        if str(item.get("id")) == session_id and item.get("isSession"):
            return item
    return None


@router.post(
    "/sessions/register",
    response_model=SessionRegistrationResponse,
    status_code=status.HTTP_201_CREATED,
)
def register_for_session(payload: SessionRegistrationRequest, db: Session = Depends(get_db)):
    store = SqlEventStore(db)
    duplicate = HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Already registered for this session")
    try:
        event = store.get_event_by_id(payload.event_id)
        if not event or not event.is_public:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")
        if _find_session_item(event, payload.session_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
        if store.find_session_registration(payload.session_id, payload.email):
            raise duplicate
        row = store.insert_session_registration({
            "session_id": payload.session_id,
            "event_id": event.id,
            "first_name": payload.first_name,
            "last_name": payload.last_name,
            "email": payload.email,
            "function": payload.function,
            "organization": payload.organization,
        })
    except DuplicateRegistrationError:
        raise duplicate
    except StoreError:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to save session registration")

    logger.info("Session registration %s created for session %s", row.id, row.session_id)
    return SessionRegistrationResponse(
        id=row.id,
        session_id=row.session_id,
        event_id=row.event_id,
        first_name=row.first_name,
        last_name=row.last_name,
        email=row.email,
        function=row.function,
        organization=row.organization,
        registered_at=row.registered_at,
    )


@router.get("/sessions/{session_id}/check-email")
def check_session_email(
    session_id: str,
    email: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
):
    if not email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email is required")
    try:
        existing = SqlEventStore(db).find_session_registration(session_id, email)
    except StoreError:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Registration lookup failed")
    return {"isRegistered": existing is not None}
