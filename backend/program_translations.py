"""Multilingual event program handling.

An event program is stored as one JSON blob on the event row. Older blobs hold
flat strings per agenda item ("legacy" shape); newer ones hold one dictionary
per localized field, keyed by language code ("current" shape). Everything that
reads a blob goes through ``decode_program_blob`` so the shape sniffing lives
in one place.

Reads are lenient (a broken blob is shown as "no program"), writes are strict
(a batch with one bad item is rejected as a whole).
"""
import json
import logging
import os
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from time_utils import now_tz, to_js_iso

logger = logging.getLogger(__name__)

BASE_LANGUAGE = "fr"
DEFAULT_LANGUAGES: Tuple[str, ...] = ("fr", "en", "pt", "es", "ar")
SESSION_TYPES: Tuple[str, ...] = ("conference", "workshop", "networking", "break", "ceremony")
OPTIONAL_LOCALIZED_FIELDS: Tuple[str, ...] = ("description", "speaker", "location")
LOCALIZED_FIELDS: Tuple[str, ...] = ("title",) + OPTIONAL_LOCALIZED_FIELDS
TIME_RE = re.compile(r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$")

BAD_TIME_FORMAT = "bad time format"
MISSING_TITLE = "missing title"


def _load_languages() -> Tuple[str, ...]:
    raw = os.environ.get("PROGRAM_LANGUAGES", "")
    codes = [code.strip().lower() for code in raw.split(",") if code.strip()]
    if not codes:
        return DEFAULT_LANGUAGES
    # The base locale always exists and always comes first.
    ordered = [BASE_LANGUAGE] + [code for code in codes if code != BASE_LANGUAGE]
    return tuple(dict.fromkeys(ordered))


LANGUAGES = _load_languages()


class ProgramDecodeError(ValueError):
    """Raised when a stored program blob cannot be read at all."""


class ProgramValidationError(ValueError):
    def __init__(self, item_title: str, reason: str):
        super().__init__(f"{reason}: {item_title!r}")
        self.item_title = item_title
        self.reason = reason


@dataclass
class DecodedProgram:
    kind: str  # "legacy" | "current" | "empty"
    program: Dict[str, Any]
    stored: Optional[Dict[str, Any]] = None  # payload as read, untouched


def empty_program() -> Dict[str, Any]:
    return {"hasProgram": False, "programItems": []}


def is_supported_language(language: Optional[str], languages: Optional[Sequence[str]] = None) -> bool:
    return bool(language) and language in (languages or LANGUAGES)


def is_legacy_items(items: Sequence[Mapping[str, Any]]) -> bool:
    """True when any item still carries a flat-string title."""
    return any(isinstance(item.get("title"), str) for item in items)


def _fan_out(value: Any, languages: Sequence[str]) -> Any:
    if isinstance(value, Mapping):
        return dict(value)
    return {language: value for language in languages}


def convert_legacy_to_multilingual(
    items: Iterable[Mapping[str, Any]],
    languages: Optional[Sequence[str]] = None,
) -> List[Dict[str, Any]]:
    """Copy every flat string into all locale slots.

    No translation happens here; the result only has the multilingual shape.
    Missing optional fields are dropped as a whole rather than per locale.
    """
    languages = tuple(languages or LANGUAGES)
    converted: List[Dict[str, Any]] = []
    for item in items:
        row = {key: value for key, value in item.items() if key not in LOCALIZED_FIELDS}
        row["id"] = item.get("id")
        row["time"] = item.get("time")
        row["title"] = _fan_out(item.get("title"), languages)
        for name in OPTIONAL_LOCALIZED_FIELDS:
            value = item.get(name)
            if value:
                row[name] = _fan_out(value, languages)
        converted.append(row)
    return converted


def decode_program_blob(raw: Any) -> DecodedProgram:
    if raw is None or (isinstance(raw, (str, bytes, bytearray)) and not raw.strip()):
        return DecodedProgram(kind="empty", program=empty_program())

    if isinstance(raw, (str, bytes, bytearray)):
        try:
            payload = json.loads(raw)
        except ValueError as exc:
            raise ProgramDecodeError("Program blob is not valid JSON") from exc
    else:
        payload = raw

    if not isinstance(payload, Mapping):
        raise ProgramDecodeError("Program blob is not a JSON object")

    items = payload.get("programItems")
    if items is None:
        items = []
    if not isinstance(items, list) or not all(isinstance(item, Mapping) for item in items):
        raise ProgramDecodeError("programItems must be a list of objects")

    has_program = payload.get("hasProgram") is True
    program: Dict[str, Any] = {"hasProgram": has_program, "programItems": items if has_program else []}
    for key in ("updatedAt", "programText"):
        if payload.get(key) is not None:
            program[key] = payload[key]

    if is_legacy_items(items):
        if has_program:
            program["programItems"] = convert_legacy_to_multilingual(items)
        return DecodedProgram(kind="legacy", program=program, stored=dict(payload))
    return DecodedProgram(kind="current", program=program, stored=dict(payload))


def upgrade_stored_program(decoded: DecodedProgram) -> Optional[Dict[str, Any]]:
    """Return the stored payload with its items in the multilingual shape.

    Works on what was stored, not on the display view: a disabled program
    keeps its items and its `hasProgram` flag. Returns None when there is
    nothing to upgrade.
    """
    if decoded.kind != "legacy" or decoded.stored is None:
        return None
    upgraded = dict(decoded.stored)
    upgraded["programItems"] = convert_legacy_to_multilingual(upgraded.get("programItems") or [])
    return upgraded


def detect_and_normalize(raw: Any) -> Dict[str, Any]:
    try:
        return decode_program_blob(raw).program
    except ProgramDecodeError as exc:
        logger.warning("Ignoring unreadable program blob: %s", exc)
        return empty_program()


def get_translated_field(field: Any, language: str, fallback: str = "") -> str:
    if not field:
        return fallback
    if isinstance(field, str):
        return field
    if not isinstance(field, Mapping):
        return fallback
    return field.get(language) or field.get(BASE_LANGUAGE) or fallback


def project_to_language(program: Optional[Mapping[str, Any]], language: str) -> Dict[str, Any]:
    if not program or not program.get("hasProgram") or program.get("programItems") is None:
        return {"hasProgram": False}

    items = []
    for item in program["programItems"]:
        row = {
            "id": item.get("id"),
            "time": item.get("time"),
            "title": get_translated_field(item.get("title"), language),
            "description": get_translated_field(item.get("description"), language),
            "speaker": get_translated_field(item.get("speaker"), language),
            "location": get_translated_field(item.get("location"), language),
            "type": item.get("type"),
        }
        if item.get("isSession"):
            row["isSession"] = True
        items.append(row)

    projected: Dict[str, Any] = {
        "hasProgram": True,
        "programItems": items,
        "updatedAt": program.get("updatedAt"),
    }
    if program.get("programText"):
        projected["programText"] = program["programText"]
    return projected


def _item_label(item: Mapping[str, Any]) -> str:
    return get_translated_field(item.get("title"), BASE_LANGUAGE)


def validate_program_items(items: Sequence[Mapping[str, Any]]) -> None:
    for item in items:
        label = _item_label(item)
        time_value = item.get("time")
        if not isinstance(time_value, str) or not TIME_RE.fullmatch(time_value):
            raise ProgramValidationError(label, BAD_TIME_FORMAT)
        if not label.strip():
            raise ProgramValidationError(label, MISSING_TITLE)


def build_program_blob(
    items: Optional[Sequence[Mapping[str, Any]]],
    has_program: Optional[bool] = None,
    now: Optional[datetime] = None,
    program_text: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """Return the ProgramData to store, or None when the program is cleared."""
    items = list(items or [])
    validate_program_items(items)

    if is_legacy_items(items):
        # Mapping titles pass through untouched, so mixed batches end up uniform.
        items = convert_legacy_to_multilingual(items)
    else:
        items = [dict(item) for item in items]

    enabled = bool(items) if has_program is None else bool(has_program)
    if not enabled:
        return None

    program: Dict[str, Any] = {
        "hasProgram": True,
        "programItems": items,
        "updatedAt": to_js_iso(now or now_tz()),
    }
    if program_text:
        program["programText"] = program_text
    return program


def serialize_program(program: Optional[Mapping[str, Any]]) -> Optional[str]:
    if program is None:
        return None
    return json.dumps(program, ensure_ascii=False, separators=(",", ":"))


def validate_and_persist(
    store,
    event_id: str,
    items: Optional[Sequence[Mapping[str, Any]]],
    has_program: Optional[bool] = None,
    now: Optional[datetime] = None,
    program_text: Optional[str] = None,
) -> Dict[str, Any]:
    program = build_program_blob(items, has_program=has_program, now=now, program_text=program_text)
    store.set_program_blob(event_id, serialize_program(program))
    if program is None:
        logger.info("Cleared program for event %s", event_id)
        return empty_program()
    logger.info("Stored program for event %s (%d items)", event_id, len(program["programItems"]))
    return program
