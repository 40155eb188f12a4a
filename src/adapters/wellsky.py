import json
import time
from datetime import timedelta
from typing import Any, Dict, Optional

import structlog

from ..models.cdm import (
    AuthState, Credentials, PostResult, Session, VendorType, VisitNote, WellSkyVisitNoteForm
)
from ..models.errors import AdapterError, ErrorType
from ..transport.http_client import FormPayload, HTTPResponse
from ..utils.html_tokens import CSRF_FIELD_NAME, extract_csrf_token
from ..utils.time_utils import to_vendor_date, utc_now
from .base import VendorAdapter

logger = structlog.get_logger(__name__)

DASHBOARD_PATH = "/dashboard/live/"
SCHEDULING_PATH = "/scheduling/"
NOTE_ADD_PATH = "/scheduling/note/add/"
POST_LOGIN_FRAGMENTS = ("/dashboard", "/live")
DEFAULT_NOTE_TAG = "38060"
BODY_PREVIEW_CHARS = 500


class WellSkyAdapter(VendorAdapter):
    """
    Adapter for WellSky Personal Care (ClearCare).

    WellSky has no public API for visit notes, so this adapter drives the
    same Django forms a browser would:
    - login page -> CSRF token, /multilogin/ AJAX pre-check, /login/ POST
    - success is the redirect to the dashboard, nothing else
    - every note submission needs a token freshly scraped from /scheduling/
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.base_url = self.settings.wellsky_base_url

    @property
    def vendor_type(self) -> VendorType:
        return VendorType.WELLSKY

    async def authenticate(self, credentials: Credentials) -> Session:
        base_url = (credentials.base_url or self.base_url).rstrip("/")
        self.base_url = base_url
        self.clear_session()
        log = logger.bind(vendor=self.vendor_type.value, username=credentials.username)

        try:
            csrf_token = await self._fetch_login_token(base_url)
            self.state = AuthState.TOKEN_ACQUIRED

            await self._multilogin(base_url, credentials, csrf_token)
            login_response = await self._submit_login(base_url, credentials, csrf_token)

            if not self._is_post_login_redirect(login_response):
                raise AdapterError(
                    f"WellSky authentication failed: login returned {login_response.status} "
                    f"(location: {login_response.location or 'none'})",
                    ErrorType.AUTHENTICATION,
                    self.vendor_type,
                    login_response,
                    status=login_response.status,
                )

            # The dashboard visit hands out the remaining session cookies
            location = login_response.location
            dashboard_url = location if location.startswith("http") else f"{base_url}{location}"
            dashboard_response = await self.http_client.get(
                dashboard_url,
                cookies=self.session_manager.get_cookies(),
            )
            self.session_manager.update_cookies(dashboard_response.cookies)

            self.session_manager.update_tokens({"csrf": csrf_token})
            if self.settings.session_ttl_minutes:
                self.session_manager.set_expiry(
                    utc_now() + timedelta(minutes=self.settings.session_ttl_minutes)
                )
            self.state = AuthState.LOGGED_IN
        except AdapterError:
            self.state = AuthState.UNAUTHENTICATED
            log.warning("authentication_failed")
            raise
        except Exception as e:
            self.state = AuthState.UNAUTHENTICATED
            raise AdapterError(
                f"WellSky authentication error: {e}",
                ErrorType.AUTHENTICATION,
                self.vendor_type,
                e,
            ) from e

        session = self.session_manager.get_session()
        log.info("authenticated", cookie_count=len(session.cookies))
        return session

    async def _fetch_login_token(self, base_url: str) -> str:
        response = await self.http_client.get(f"{base_url}/login/?next={DASHBOARD_PATH}")
        self.session_manager.update_cookies(response.cookies)
        self.validate_response(response)

        csrf_token = extract_csrf_token(response.body)
        if not csrf_token:
            raise AdapterError(
                "Failed to extract CSRF token from login page",
                ErrorType.AUTHENTICATION,
                self.vendor_type,
                status=response.status,
            )
        return csrf_token

    async def _multilogin(self, base_url: str, credentials: Credentials, csrf_token: str) -> None:
        response = await self.http_client.post(
            f"{base_url}/multilogin/",
            headers={'X-Requested-With': 'XMLHttpRequest'},
            body=FormPayload(self._login_fields(credentials, csrf_token), charset="UTF-8"),
            cookies=self.session_manager.get_cookies(),
        )
        self.session_manager.update_cookies(response.cookies)

        if response.status == 200 and isinstance(response.body, dict):
            if not response.body.get("success") or response.body.get("errors"):
                raise AdapterError(
                    "WellSky multilogin failed",
                    ErrorType.AUTHENTICATION,
                    self.vendor_type,
                    response,
                    status=response.status,
                    details={"errors": response.body.get("errors") or []},
                )

    async def _submit_login(self, base_url: str, credentials: Credentials, csrf_token: str) -> HTTPResponse:
        response = await self.http_client.post(
            f"{base_url}/login/?ts={int(time.time())}",
            body=FormPayload(self._login_fields(credentials, csrf_token)),
            cookies=self.session_manager.get_cookies(),
            follow_redirects=False,
        )
        self.session_manager.update_cookies(response.cookies)
        return response

    @staticmethod
    def _login_fields(credentials: Credentials, csrf_token: str) -> Dict[str, str]:
        return {
            CSRF_FIELD_NAME: csrf_token,
            "username": credentials.username,
            "password": credentials.password,
            "next": DASHBOARD_PATH,
        }

    @staticmethod
    def _is_post_login_redirect(response: HTTPResponse) -> bool:
        if not response.is_redirect:
            return False
        return any(fragment in response.location for fragment in POST_LOGIN_FRAGMENTS)

    def transform(self, note: VisitNote) -> WellSkyVisitNoteForm:
        metadata = note.metadata or {}
        # Notes attach to a WellSky shift; callers that know it pass metadata.shift
        shift = metadata.get("shift") or note.visit_id
        tags = metadata.get("tags") or DEFAULT_NOTE_TAG

        return WellSkyVisitNoteForm(
            shift=str(shift),
            date=to_vendor_date(note.visit_date),
            tags=str(tags),
            note=note.note,
        )

    async def post_visit_note(self, note: VisitNote) -> PostResult:
        if not self.is_authenticated():
            raise AdapterError(
                "Not authenticated. Please call authenticate() first.",
                ErrorType.AUTHENTICATION,
                self.vendor_type,
            )

        return await self.handle_retry(lambda: self._submit_note(note))

    async def _submit_note(self, note: VisitNote) -> PostResult:
        base_url = self.base_url
        csrf_token = await self._refresh_csrf_token(base_url)

        form = self.transform(note).model_copy(update={CSRF_FIELD_NAME: csrf_token})
        form_data = form.model_dump(exclude_none=True)

        response = await self.http_client.post(
            f"{base_url}{NOTE_ADD_PATH}",
            headers={
                'Referer': f"{base_url}{DASHBOARD_PATH}",
                'Origin': base_url,
            },
            body=FormPayload(form_data),
            cookies=self.session_manager.get_cookies(),
            follow_redirects=True,
        )
        self.session_manager.update_cookies(response.cookies)

        if 200 <= response.status < 400:
            logger.info("visit_note_posted", vendor=self.vendor_type.value, visit_id=note.visit_id)
            return PostResult(
                success=True,
                visit_id=note.visit_id,
                timestamp=utc_now(),
                request=form_data,
                response=response.body,
            )

        if response.status == 403:
            self.state = AuthState.EXPIRED
            preview = self._preview(response.body)
            raise AdapterError(
                "WellSky post visit note failed with 403 Forbidden. This may indicate:\n"
                "1. CSRF token is invalid or expired\n"
                "2. Session has expired\n"
                "3. Missing required permissions\n"
                f"Response body: {preview}\n"
                f"Request data: {json.dumps(form_data, indent=2)}",
                ErrorType.AUTHENTICATION,
                self.vendor_type,
                response,
                status=403,
                details={
                    "status_text": response.status_text,
                    "body": preview,
                    "request_data": form_data,
                    "csrf_token": "present" if csrf_token else "missing",
                },
            )

        raise AdapterError(
            f"WellSky post visit note failed with status {response.status} {response.status_text}",
            ErrorType.VENDOR_SPECIFIC,
            self.vendor_type,
            response,
            status=response.status,
            details={"response": response.body, "request_data": form_data},
        )

    async def _refresh_csrf_token(self, base_url: str) -> str:
        """
        Tokens rotate per page view; read a fresh one from /scheduling/.

        A 403 or redirect there may just be that page, so the dashboard is
        probed before declaring the session dead.
        """
        csrf_token: Optional[str] = self.session_manager.get_tokens().get("csrf")

        scheduling_response = await self.http_client.get(
            f"{base_url}{SCHEDULING_PATH}",
            headers={'Referer': f"{base_url}{DASHBOARD_PATH}"},
            cookies=self.session_manager.get_cookies(),
            follow_redirects=False,
        )
        self.session_manager.update_cookies(scheduling_response.cookies)

        if self._signals_session_loss(scheduling_response):
            dashboard_response = await self.http_client.get(
                f"{base_url}{DASHBOARD_PATH}",
                cookies=self.session_manager.get_cookies(),
                follow_redirects=False,
            )
            self.session_manager.update_cookies(dashboard_response.cookies)

            if self._signals_session_loss(dashboard_response):
                self.state = AuthState.EXPIRED
                raise AdapterError(
                    "Session expired or invalid. Please login again.",
                    ErrorType.AUTHENTICATION,
                    self.vendor_type,
                    status=dashboard_response.status,
                    details={
                        "scheduling_status": scheduling_response.status,
                        "dashboard_status": dashboard_response.status,
                    },
                )

        if 200 <= scheduling_response.status < 300:
            fresh_token = extract_csrf_token(scheduling_response.body)
            if fresh_token:
                csrf_token = fresh_token
                self.session_manager.update_tokens({"csrf": fresh_token})

        if not csrf_token:
            raise AdapterError(
                "Failed to obtain CSRF token. Please try logging in again.",
                ErrorType.AUTHENTICATION,
                self.vendor_type,
            )
        return csrf_token

    @staticmethod
    def _signals_session_loss(response: HTTPResponse) -> bool:
        return response.status == 403 or response.is_redirect

    @staticmethod
    def _preview(body: Any) -> str:
        text = body if isinstance(body, str) else json.dumps(body)
        return text[:BODY_PREVIEW_CHARS]
