from typing import Any, Dict, List, Mapping, Optional, Union

import structlog
from pydantic import ValidationError

from ..adapters.base import VendorAdapter
from ..adapters.factory import AdapterFactory
from ..models.cdm import PostResult, VendorType, VisitNote
from ..models.errors import AdapterError, ErrorType

logger = structlog.get_logger(__name__)

REQUIRED_FIELDS = (
    ("visit_id", "visitId is required"),
    ("patient_id", "patientId is required"),
    ("caregiver_id", "caregiverId is required"),
    ("note", "note content is required"),
    ("visit_date", "visitDate is required"),
)


class VisitNoteService:
    """
    Entry point for posting canonical visit notes to an EMR.

    Validates the note before anything touches the network, delegates to
    the vendor adapter and guarantees callers only ever see AdapterError.
    """

    def __init__(
        self,
        vendor: Union[VendorType, str],
        adapter: Optional[VendorAdapter] = None,
        factory: Optional[AdapterFactory] = None,
    ):
        self.adapter = adapter or (factory or AdapterFactory()).create(vendor)
        self.vendor = self.adapter.vendor_type

    async def post_visit_note(self, note: Union[VisitNote, Mapping[str, Any]]) -> PostResult:
        visit_note = self._coerce(note)
        self.validate_visit_note(visit_note)

        try:
            result = await self.adapter.post_visit_note(visit_note)
        except AdapterError as e:
            logger.error(
                "visit_note_failed",
                vendor=self.vendor.value,
                visit_id=visit_note.visit_id,
                error_type=e.error_type.value,
                error=e.message,
            )
            raise
        except Exception as e:
            logger.error("visit_note_failed", vendor=self.vendor.value, visit_id=visit_note.visit_id, error=str(e))
            raise AdapterError(
                f"Failed to post visit note: {e}",
                ErrorType.VENDOR_SPECIFIC,
                self.vendor,
                e,
            ) from e

        self._log_result(result)
        return result

    def validate_visit_note(self, note: VisitNote) -> None:
        errors: List[Dict[str, str]] = []
        for field, message in REQUIRED_FIELDS:
            value = getattr(note, field)
            if value is None or (isinstance(value, str) and not value.strip()):
                errors.append({"field": field, "message": message})

        if errors:
            raise AdapterError(
                "; ".join(e["message"] for e in errors),
                ErrorType.VALIDATION,
                self.vendor,
                details={"errors": errors},
            )

    def _coerce(self, note: Union[VisitNote, Mapping[str, Any]]) -> VisitNote:
        if isinstance(note, VisitNote):
            return note
        try:
            return VisitNote.model_validate(dict(note))
        except ValidationError as e:
            raise AdapterError(
                f"Invalid visit note: {e.error_count()} field error(s)",
                ErrorType.VALIDATION,
                self.vendor,
                e,
                details={"errors": [
                    {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                    for err in e.errors()
                ]},
            ) from e

    def _log_result(self, result: PostResult) -> None:
        if result.success:
            logger.info(
                "visit_note_posted",
                vendor=self.vendor.value,
                visit_id=result.visit_id,
                timestamp=result.timestamp.isoformat(),
            )
        else:
            logger.warning("visit_note_not_confirmed", vendor=self.vendor.value, error=result.error)
