from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ..utils.time_utils import parse_visit_date


class VendorType(str, Enum):
    WELLSKY = "wellsky"
    AXISCARE = "axiscare"
    ALAYACARE = "alayacare"


class AuthState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    TOKEN_ACQUIRED = "token_acquired"
    LOGGED_IN = "logged_in"
    EXPIRED = "expired"


class CamelModel(BaseModel):
    """Base for models that cross the wire with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Task(CamelModel):
    id: Optional[str] = None
    name: str
    completed: bool = False
    notes: Optional[str] = None


class VisitNote(CamelModel):
    """
    Canonical visit note, independent of any EMR vendor.

    Required-field checks happen in VisitNoteService before anything is
    sent, so an incomplete note can still be constructed here.
    """

    visit_id: str = ""
    patient_id: str = ""
    caregiver_id: str = ""
    visit_date: date = Field(default_factory=date.today)
    start_time: str = ""
    end_time: str = ""
    note: str = ""
    tasks: Optional[List[Task]] = None
    metadata: Optional[Dict[str, Any]] = None

    @field_validator('visit_date', mode='before')
    @classmethod
    def coerce_visit_date(cls, v):
        if v is None or v == "":
            return date.today()
        return parse_visit_date(v)

    @field_validator('visit_id', 'patient_id', 'caregiver_id', mode='before')
    @classmethod
    def ids_as_text(cls, v):
        if v is None:
            return ""
        return str(v)


class Credentials(CamelModel):
    username: str
    password: str = Field(repr=False)
    base_url: Optional[str] = None


class Session(CamelModel):
    cookies: List[str] = Field(default_factory=list)
    tokens: Dict[str, str] = Field(default_factory=dict)
    expires_at: Optional[datetime] = None


class RetryConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, gt=0)
    backoff_ms: int = Field(default=1000, ge=0)
    retryable_errors: Tuple[str, ...] = ("timeout", "network", "ECONNREFUSED")


class PostResult(CamelModel):
    success: bool
    visit_id: str
    timestamp: datetime
    request: Optional[Dict[str, Any]] = None
    response: Any = None
    error: Optional[str] = None


class WellSkyVisitNoteForm(BaseModel):
    """Form fields of WellSky's scheduling note endpoint, in posting order."""

    carelog: str = ""
    shift: str
    unavailability: str = ""
    date: str
    tags: str
    note: str
    show_with_billing: str = "on"
    show_with_payroll: str = "on"
    csrfmiddlewaretoken: Optional[str] = None
