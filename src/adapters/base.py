from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog

from ..config.settings import Settings, get_settings
from ..models.cdm import AuthState, Credentials, PostResult, Session, VendorType, VisitNote
from ..models.errors import AdapterError, ErrorType
from ..transport.http_client import HTTPClient, HTTPResponse
from ..transport.retry_handler import RetryHandler
from ..transport.session_manager import SessionManager

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class VendorAdapter(ABC):
    """
    Base adapter for one EMR vendor.

    Each vendor's login flow and form shape lives in a concrete adapter
    implementing authenticate(), transform() and post_visit_note(). Callers
    only ever see the canonical VisitNote and PostResult.

    An adapter instance owns one HTTPClient and one SessionManager; use one
    instance per login context and do not share it between concurrent tasks.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[HTTPClient] = None,
        retry_handler: Optional[RetryHandler] = None,
    ):
        self.settings = settings or get_settings()
        self.http_client = http_client or HTTPClient(
            self.vendor_type, timeout_ms=self.settings.http_timeout_ms
        )
        self.session_manager = SessionManager()
        self.retry_handler = retry_handler or RetryHandler(self.settings.retry_config)
        self.state = AuthState.UNAUTHENTICATED

    @property
    @abstractmethod
    def vendor_type(self) -> VendorType:
        """Unique identifier for this vendor/adapter."""
        pass

    @abstractmethod
    async def authenticate(self, credentials: Credentials) -> Session:
        """
        Log in and populate the session.

        Returns:
            A copy of the authenticated session

        Raises:
            AdapterError: AUTHENTICATION when the vendor rejects the login,
                NETWORK when it cannot be reached
        """
        pass

    @abstractmethod
    def transform(self, note: VisitNote) -> Any:
        """Map a canonical note to the vendor's request shape. Must be pure."""
        pass

    @abstractmethod
    async def post_visit_note(self, note: VisitNote) -> PostResult:
        """Submit a canonical note. Requires a logged-in session."""
        pass

    async def handle_retry(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Retry network failures and 5xx responses; everything else fails fast."""
        return await self.retry_handler.execute(operation, self._is_retryable)

    @staticmethod
    def _is_retryable(error: BaseException) -> bool:
        if RetryHandler.is_network_error(error):
            return True
        return RetryHandler.is_server_error(RetryHandler.status_of(error))

    def validate_response(self, response: Optional[HTTPResponse]) -> None:
        if response is None:
            raise AdapterError(
                "Empty response from EMR",
                ErrorType.NETWORK,
                self.vendor_type,
            )

        if response.status >= 400:
            error_type = (
                ErrorType.AUTHENTICATION
                if RetryHandler.is_auth_error(response.status)
                else ErrorType.VENDOR_SPECIFIC
            )
            raise AdapterError(
                f"EMR request failed: {response.status} {response.status_text}",
                error_type,
                self.vendor_type,
                response,
                status=response.status,
            )

    def get_session(self) -> Session:
        return self.session_manager.get_session()

    def is_authenticated(self) -> bool:
        if self.state != AuthState.LOGGED_IN:
            return False
        if self.session_manager.is_expired():
            self.state = AuthState.EXPIRED
            return False
        return True

    def resume_session(self, session: Session) -> bool:
        """Adopt a previously saved session. Returns whether it is usable."""
        self.session_manager.set_session(session)
        if self.session_manager.is_expired():
            self.state = AuthState.EXPIRED
        else:
            self.state = AuthState.LOGGED_IN
        logger.info(
            "session_resumed",
            vendor=self.vendor_type.value,
            state=self.state.value,
            cookie_count=len(session.cookies),
        )
        return self.state == AuthState.LOGGED_IN

    def clear_session(self) -> None:
        self.session_manager.clear_session()
        self.state = AuthState.UNAUTHENTICATED

    async def aclose(self) -> None:
        await self.http_client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()
