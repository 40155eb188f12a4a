from typing import Any, Dict

from fastapi import Body, FastAPI, HTTPException
from fastapi.responses import JSONResponse

from src.adapters.factory import AdapterFactory
from src.config.settings import get_settings
from src.models.cdm import Credentials
from src.models.errors import AdapterError, ErrorType
from src.services.authentication_service import AuthenticationService
from src.services.visit_note_service import VisitNoteService
from src.transport.session_manager import SessionStore
from src.utils.logging_config import configure_logging

settings = get_settings()
configure_logging(settings.log_level, settings.log_json)

app = FastAPI(
    title="EMR Adapter",
    description="Post canonical visit notes to EMR systems through vendor adapters",
    version="1.0.0"
)

adapter_factory = AdapterFactory()
session_store = SessionStore(settings.session_dir)

ERROR_STATUS = {
    ErrorType.VALIDATION: 400,
    ErrorType.AUTHENTICATION: 401,
    ErrorType.NETWORK: 504,
    ErrorType.VENDOR_SPECIFIC: 502,
}


def _error_response(error: AdapterError) -> JSONResponse:
    return JSONResponse(status_code=ERROR_STATUS[error.error_type], content=error.to_dict())


def _create_adapter(vendor: str):
    try:
        return adapter_factory.create(vendor)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/vendors")
def list_vendors():
    return {"vendors": adapter_factory.supported_vendors()}


@app.post("/vendors/{vendor}/login")
async def login(vendor: str, credentials: Credentials):
    """
    Log in to the vendor and store the session for later submissions.

    Only cookie/token counts and names are returned, never their values.
    """
    adapter = _create_adapter(vendor)
    async with adapter:
        auth_service = AuthenticationService(vendor, adapter=adapter, store=session_store)
        try:
            session = await auth_service.authenticate(credentials)
        except AdapterError as e:
            return _error_response(e)

    return {
        "vendor": adapter.vendor_type.value,
        "cookieCount": len(session.cookies),
        "tokens": sorted(session.tokens),
        "expiresAt": session.expires_at.isoformat() if session.expires_at else None,
    }


@app.post("/vendors/{vendor}/visit-notes")
async def post_visit_note(vendor: str, note: Dict[str, Any] = Body(...)):
    """
    Submit a canonical visit note using the stored session.

    Error kinds map to statuses: validation 400, authentication 401 (log in
    again), network 504, vendor 502.
    """
    adapter = _create_adapter(vendor)
    async with adapter:
        auth_service = AuthenticationService(vendor, adapter=adapter, store=session_store)
        if not auth_service.resume_session():
            raise HTTPException(
                status_code=401,
                detail=f"No valid session for {adapter.vendor_type.value}. Log in first.",
            )

        note_service = VisitNoteService(vendor, adapter=adapter)
        try:
            result = await note_service.post_visit_note(note)
        except AdapterError as e:
            return _error_response(e)

        # Token rotation and new cookies must survive for the next call
        session_store.save(adapter.vendor_type.value, adapter.get_session())

    return result.model_dump(mode="json", by_alias=True)


@app.delete("/vendors/{vendor}/session")
async def logout(vendor: str):
    adapter = _create_adapter(vendor)
    async with adapter:
        AuthenticationService(vendor, adapter=adapter, store=session_store).logout()
    return {"vendor": adapter.vendor_type.value, "loggedOut": True}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
