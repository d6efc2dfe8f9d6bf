from types import SimpleNamespace

import pytest

from event_store import DuplicateRegistrationError
from rate_limit import FixedWindowRateLimiter, RateLimitDecision, RateLimiter
from registration_admission import Admitted, RegistrationAdmission, Rejected, RejectionReason


class FakeStore:
    """In-memory stand-in that records every call it receives."""

    def __init__(self, events=None):
        self.events = {event.id: event for event in (events or [])}
        self.registrations = []
        self.calls = []
        self.race_on_insert = False

    def get_event_by_id(self, event_id, lock=False):
        self.calls.append(("get_event_by_id", event_id, lock))
        return self.events.get(event_id)

    def find_registration(self, event_id, email):
        self.calls.append(("find_registration", event_id, email))
        for row in self.registrations:
            if row.event_id == event_id and row.email == email:
                return row
        return None

    def count_public_registrations(self, event_id):
        self.calls.append(("count_public_registrations", event_id))
        return sum(1 for row in self.registrations if row.event_id == event_id)

    def insert_registration(self, record):
        self.calls.append(("insert_registration", record["email"]))
        if self.race_on_insert:
            raise DuplicateRegistrationError(record["email"])
        row = SimpleNamespace(id=f"reg-{len(self.registrations) + 1}", **record)
        self.registrations.append(row)
        return row

    def called(self, name):
        return [call for call in self.calls if call[0] == name]


class DenyAll(RateLimiter):
    def check(self, key):
        return RateLimitDecision(allowed=False, retry_after=42)


def _event(event_id="E", is_public=True, max_attendees=None):
    return SimpleNamespace(id=event_id, title="Forum", slug="forum", is_public=is_public, max_attendees=max_attendees)


def _payload(email="a@x.com", event_id="E", **overrides):
    payload = {
        "eventId": event_id,
        "email": email,
        "firstName": "Awa",
        "lastName": "Ndiaye",
        "consent": True,
    }
    payload.update(overrides)
    return payload


def _admission(store, limiter=None):
    return RegistrationAdmission(store, limiter or FixedWindowRateLimiter(max_requests=100))


def test_end_to_end_admitted_duplicate_full():
    store = FakeStore([_event(max_attendees=1)])
    admission = _admission(store)

    first = admission.try_register(_payload("a@x.com"), "1.1.1.1")
    assert isinstance(first, Admitted)
    assert first.registration_id == "reg-1"

    second = admission.try_register(_payload("a@x.com"), "1.1.1.1")
    assert second == Rejected(RejectionReason.DUPLICATE, "This email is already registered for this event")

    third = admission.try_register(_payload("c@x.com"), "1.1.1.1")
    assert isinstance(third, Rejected)
    assert third.reason == RejectionReason.FULL


def test_duplicate_never_reaches_insert():
    store = FakeStore([_event()])
    store.registrations.append(SimpleNamespace(id="reg-0", event_id="E", email="a@b.com"))

    outcome = _admission(store).try_register(_payload("a@b.com"), "ip")

    assert outcome.reason == RejectionReason.DUPLICATE
    assert store.called("insert_registration") == []


def test_capacity_ceiling_is_enforced():
    store = FakeStore([_event(max_attendees=2)])
    for index in range(2):
        store.registrations.append(SimpleNamespace(id=f"r{index}", event_id="E", email=f"p{index}@x.com"))

    outcome = _admission(store).try_register(_payload("third@x.com"), "ip")

    assert outcome == Rejected(RejectionReason.FULL, "This event is full")
    assert store.called("insert_registration") == []


@pytest.mark.parametrize("ceiling", [None, 0])
def test_no_ceiling_never_rejects_for_capacity(ceiling):
    store = FakeStore([_event(max_attendees=ceiling)])
    for index in range(50):
        store.registrations.append(SimpleNamespace(id=f"r{index}", event_id="E", email=f"p{index}@x.com"))

    outcome = _admission(store).try_register(_payload("late@x.com"), "ip")

    assert isinstance(outcome, Admitted)
    assert store.called("count_public_registrations") == []


def test_rate_limited_client_never_touches_the_store():
    store = FakeStore([_event()])

    outcome = _admission(store, DenyAll()).try_register(_payload(), "ip")

    assert outcome == Rejected(RejectionReason.RATE_LIMITED, "Too many attempts. Please try again later.", 42)
    assert store.calls == []


def test_rate_limit_counts_rejected_attempts_too():
    store = FakeStore([_event()])
    admission = _admission(store, FixedWindowRateLimiter(max_requests=5, window_seconds=3600))

    for _ in range(5):
        outcome = admission.try_register({"email": "broken"}, "1.2.3.4")
        assert outcome.reason == RejectionReason.INVALID_INPUT

    outcome = admission.try_register(_payload(), "1.2.3.4")
    assert outcome.reason == RejectionReason.RATE_LIMITED
    assert isinstance(admission.try_register(_payload(), "5.6.7.8"), Admitted)


@pytest.mark.parametrize(
    "payload",
    [
        None,
        "not an object",
        _payload(consent=False),
        _payload(consent="true"),
        {key: value for key, value in _payload().items() if key != "consent"},
        _payload(firstName=""),
        {key: value for key, value in _payload().items() if key != "lastName"},
        {key: value for key, value in _payload().items() if key != "eventId"},
    ],
)
def test_incomplete_requests_are_invalid(payload):
    store = FakeStore([_event()])
    outcome = _admission(store).try_register(payload, "ip")
    assert outcome == Rejected(RejectionReason.INVALID_INPUT, "Email, first name, last name and consent are required")
    assert store.calls == []


@pytest.mark.parametrize("email", ["plainaddress", "a b@x.com", "a@x", "@x.com"])
def test_malformed_email_is_invalid(email):
    outcome = _admission(FakeStore([_event()])).try_register(_payload(email), "ip")
    assert outcome == Rejected(RejectionReason.INVALID_INPUT, "Invalid email address format")


def test_unknown_event():
    outcome = _admission(FakeStore()).try_register(_payload(event_id="missing"), "ip")
    assert outcome == Rejected(RejectionReason.NOT_FOUND, "Event not found")


def test_private_event_is_rejected_before_duplicate_check():
    store = FakeStore([_event(is_public=False)])
    outcome = _admission(store).try_register(_payload(), "ip")

    assert outcome.reason == RejectionReason.NOT_PUBLIC
    assert outcome.detail == "Event not found"
    assert store.called("find_registration") == []


def test_event_is_read_with_a_lock():
    store = FakeStore([_event()])
    _admission(store).try_register(_payload(), "ip")
    assert store.called("get_event_by_id") == [("get_event_by_id", "E", True)]


def test_insert_race_is_reported_as_duplicate():
    store = FakeStore([_event()])
    store.race_on_insert = True

    outcome = _admission(store).try_register(_payload(), "ip")

    assert outcome.reason == RejectionReason.DUPLICATE


def test_admitted_record_carries_profile_and_flags():
    store = FakeStore([_event()])
    payload = _payload(phone="+221 77 000 00 00", company="ACME", dietaryRestrictions="vegetarian", unknown="dropped")

    outcome = _admission(store).try_register(payload, "ip")

    assert isinstance(outcome, Admitted)
    row = store.registrations[0]
    assert row.is_public is True
    assert row.consent is True
    assert row.phone == "+221 77 000 00 00"
    assert row.dietary_restrictions == "vegetarian"
    assert not hasattr(row, "unknown")
