from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from typing import Optional, List, Dict, Union
from enum import Enum
from datetime import datetime, date
import re


EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

LocalizedText = Dict[str, Optional[str]]


def _validate_email_format(value: str) -> str:
    if not EMAIL_RE.fullmatch(value):
        raise ValueError("Invalid email address format")
    return value


class UserRoleEnum(str, Enum):
    ADMIN = "ADMIN"
    ORGANIZER = "ORGANIZER"
    USER = "USER"


class SessionTypeEnum(str, Enum):
    CONFERENCE = "conference"
    WORKSHOP = "workshop"
    NETWORKING = "networking"
    BREAK = "break"
    CEREMONY = "ceremony"


# Auth Schemas
class UserLogin(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RefreshTokenRequest(BaseModel):
    refresh_token: str


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: str
    role: UserRoleEnum
    created_at: Optional[datetime] = None

    @field_validator("role", mode="before")
    @classmethod
    def unwrap_role(cls, v):
        return getattr(v, "value", v)


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: UserResponse


# Event Schemas
class PublicEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    slug: str
    description: Optional[str] = None
    location: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    max_attendees: Optional[int] = None


class EventSummary(BaseModel):
    id: str
    title: str
    slug: str


# Program Schemas
class ProgramItemIn(BaseModel):
    """One agenda slot, in either the flat or the multilingual shape."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    time: str
    title: Union[str, LocalizedText]
    description: Optional[Union[str, LocalizedText]] = None
    speaker: Optional[Union[str, LocalizedText]] = None
    location: Optional[Union[str, LocalizedText]] = None
    type: Optional[SessionTypeEnum] = None
    is_session: Optional[bool] = Field(default=None, alias="isSession")

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        # Older editors generated numeric ids from timestamps.
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class ProgramUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    has_program: Optional[bool] = Field(default=None, alias="hasProgram")
    program_text: Optional[str] = Field(default=None, alias="programText")
    program_items: List[ProgramItemIn] = Field(default_factory=list, alias="programItems")


# Registration Schemas
class PublicRegistrationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    event_id: str = Field(..., alias="eventId", min_length=1)
    email: str = Field(..., min_length=1)
    first_name: str = Field(..., alias="firstName", min_length=1)
    last_name: str = Field(..., alias="lastName", min_length=1)
    phone: Optional[str] = None
    company: Optional[str] = None
    position: Optional[str] = None
    experience: Optional[str] = None
    expectations: Optional[str] = None
    dietary_restrictions: Optional[str] = Field(default=None, alias="dietaryRestrictions")
    consent: bool

    @field_validator("consent", mode="before")
    @classmethod
    def validate_consent(cls, v):
        if v is not True:
            raise ValueError("Consent is required")
        return v

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        return _validate_email_format(v)


class RegistrationAdmittedResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    registration_id: str = Field(..., alias="registrationId")
    event: Optional[EventSummary] = None


class RegistrationInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    first_name: str = Field(..., alias="firstName")
    last_name: str = Field(..., alias="lastName")
    email: str
    registered_at: Optional[datetime] = Field(default=None, alias="registeredAt")


class RegistrationCheckResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_registered: bool = Field(..., alias="isRegistered")
    message: Optional[str] = None
    registration: Optional[RegistrationInfo] = None
    event: Optional[EventSummary] = None


class SessionRegistrationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., alias="sessionId", min_length=1)
    event_id: str = Field(..., alias="eventId", min_length=1)
    first_name: str = Field(..., alias="firstName", min_length=1)
    last_name: str = Field(..., alias="lastName", min_length=1)
    email: str = Field(..., min_length=1)
    function: str = Field(..., min_length=1)
    organization: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        return _validate_email_format(v)


class SessionRegistrationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str
    session_id: str = Field(..., alias="sessionId")
    event_id: str = Field(..., alias="eventId")
    first_name: str = Field(..., alias="firstName")
    last_name: str = Field(..., alias="lastName")
    email: str
    function: str
    organization: str
    registered_at: Optional[datetime] = Field(default=None, alias="registeredAt")
