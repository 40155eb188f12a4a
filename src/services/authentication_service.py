from typing import Optional, Union

import structlog

from ..adapters.base import VendorAdapter
from ..adapters.factory import AdapterFactory
from ..models.cdm import Credentials, Session, VendorType
from ..models.errors import AdapterError, ErrorType
from ..transport.session_manager import SessionStore

logger = structlog.get_logger(__name__)


class AuthenticationService:
    """
    Login, session resume and logout for one vendor.

    With a SessionStore the session survives between processes: it is
    saved after a successful login and picked up again by resume_session().
    """

    def __init__(
        self,
        vendor: Union[VendorType, str],
        adapter: Optional[VendorAdapter] = None,
        store: Optional[SessionStore] = None,
        factory: Optional[AdapterFactory] = None,
    ):
        self.adapter = adapter or (factory or AdapterFactory()).create(vendor)
        self.vendor = self.adapter.vendor_type
        self.store = store

    async def authenticate(self, credentials: Credentials) -> Session:
        try:
            session = await self.adapter.authenticate(credentials)
        except AdapterError:
            raise
        except Exception as e:
            raise AdapterError(
                f"Authentication failed: {e}",
                ErrorType.AUTHENTICATION,
                self.vendor,
                e,
            ) from e

        if self.store is not None:
            self.store.save(self.vendor.value, session)
        return session

    def resume_session(self) -> bool:
        """Adopt the stored session if there is one and it has not expired."""
        if self.store is None:
            return self.adapter.is_authenticated()

        session = self.store.load(self.vendor.value)
        if session is None:
            logger.info("no_stored_session", vendor=self.vendor.value)
            return False
        return self.adapter.resume_session(session)

    def logout(self) -> None:
        self.adapter.clear_session()
        if self.store is not None:
            self.store.clear(self.vendor.value)
        logger.info("logged_out", vendor=self.vendor.value)
