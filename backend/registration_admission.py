"""Admission control for public self-registration.

Gates run in a fixed order and stop at the first failure:

    rate limit -> request shape -> event exists -> event public
               -> duplicate email -> capacity -> insert

The rate-limit gate comes first so every attempt from a client counts, and a
limited client never causes a store round-trip.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from pydantic import ValidationError

from event_store import DuplicateRegistrationError, EventStore
from rate_limit import RateLimiter
from schemas import PublicRegistrationRequest

logger = logging.getLogger(__name__)


class RejectionReason(str, Enum):
    INVALID_INPUT = "invalid_input"
    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"
    NOT_PUBLIC = "not_public"
    DUPLICATE = "duplicate"
    FULL = "full"


@dataclass(frozen=True)
class Admitted:
    registration_id: str
    event: Any = None


@dataclass(frozen=True)
class Rejected:
    reason: RejectionReason
    detail: str
    retry_after: Optional[int] = None


REQUIRED_FIELDS_MESSAGE = "Email, first name, last name and consent are required"
INVALID_EMAIL_MESSAGE = "Invalid email address format"


def _describe_invalid_input(exc: ValidationError) -> str:
    for error in exc.errors():
        if tuple(error.get("loc", ())) == ("email",) and error.get("type") == "value_error":
            return INVALID_EMAIL_MESSAGE
    return REQUIRED_FIELDS_MESSAGE


class RegistrationAdmission:
    def __init__(self, store: EventStore, rate_limiter: RateLimiter):
        self.store = store
        self.rate_limiter = rate_limiter

    def _reject(self, reason: RejectionReason, detail: str, *, client_key: str, retry_after: Optional[int] = None) -> Rejected:
        logger.info("Registration rejected (%s) for client %s", reason.value, client_key)
        return Rejected(reason=reason, detail=detail, retry_after=retry_after)

    def try_register(self, payload: Any, client_key: Optional[str]):
        client_key = client_key or "unknown"

        decision = self.rate_limiter.check(client_key)
        if not decision.allowed:
            return self._reject(
                RejectionReason.RATE_LIMITED,
                "Too many attempts. Please try again later.",
                client_key=client_key,
                retry_after=decision.retry_after,
            )

        try:
            request = PublicRegistrationRequest.model_validate(payload)
        except ValidationError as exc:
            return self._reject(RejectionReason.INVALID_INPUT, _describe_invalid_input(exc), client_key=client_key)

        event = self.store.get_event_by_id(request.event_id, lock=True)
        if event is None:
            return self._reject(RejectionReason.NOT_FOUND, "Event not found", client_key=client_key)
        if not event.is_public:
            return self._reject(RejectionReason.NOT_PUBLIC, "Event not found", client_key=client_key)

        if self.store.find_registration(event.id, request.email) is not None:
            return self._reject(
                RejectionReason.DUPLICATE,
                "This email is already registered for this event",
                client_key=client_key,
            )

        # A ceiling of 0 is treated like no ceiling.
        if event.max_attendees:
            if self.store.count_public_registrations(event.id) >= event.max_attendees:
                return self._reject(RejectionReason.FULL, "This event is full", client_key=client_key)

        record = {
            "event_id": event.id,
            "email": request.email,
            "first_name": request.first_name,
            "last_name": request.last_name,
            "phone": request.phone,
            "company": request.company,
            "position": request.position,
            "experience": request.experience,
            "expectations": request.expectations,
            "dietary_restrictions": request.dietary_restrictions,
            "is_public": True,
            "consent": True,
        }
        try:
            registration = self.store.insert_registration(record)
        except DuplicateRegistrationError:
            return self._reject(
                RejectionReason.DUPLICATE,
                "This email is already registered for this event",
                client_key=client_key,
            )

        logger.info("Registration %s admitted for event %s", registration.id, event.id)
        return Admitted(registration_id=registration.id, event=event)
