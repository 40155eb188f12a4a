import json
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Union

import structlog
from pydantic import ValidationError

from ..models.cdm import Session
from ..utils.time_utils import is_past
from .http_client import merge_cookie_lists

logger = structlog.get_logger(__name__)


class SessionManager:
    """
    Cookies and tokens for one authenticated context.

    Owned by exactly one adapter. State only changes through the merge
    operations; set_session/clear_session are the explicit resets.
    """

    def __init__(self):
        self._session = Session()

    def set_session(self, session: Session) -> None:
        self._session = session.model_copy(deep=True)

    def get_session(self) -> Session:
        return self._session.model_copy(deep=True)

    def get_cookies(self) -> List[str]:
        return list(self._session.cookies)

    def get_tokens(self) -> Dict[str, str]:
        return dict(self._session.tokens)

    def update_cookies(self, cookies: List[str]) -> None:
        """Merge by cookie name; the incoming value wins, everything else survives."""
        if not cookies:
            return
        self._session.cookies = merge_cookie_lists(self._session.cookies, cookies)

    def update_tokens(self, tokens: Mapping[str, str]) -> None:
        self._session.tokens = {**self._session.tokens, **tokens}

    def set_expiry(self, expires_at: Optional[datetime]) -> None:
        self._session.expires_at = expires_at

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return is_past(self._session.expires_at, now)

    def clear_session(self) -> None:
        self._session = Session()


class SessionStore:
    """
    One JSON file per vendor: {cookies, tokens, expiresAt}.

    Anything unreadable is reported as "no session" so the caller simply
    logs in again.
    """

    def __init__(self, directory: Union[str, Path] = "."):
        self.directory = Path(directory)

    def path_for(self, vendor: str) -> Path:
        vendor = str(getattr(vendor, "value", vendor))
        return self.directory / f".session-{vendor}.json"

    def save(self, vendor: str, session: Session) -> bool:
        path = self.path_for(vendor)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            path.write_text(
                session.model_dump_json(by_alias=True, exclude_none=True, indent=2),
                encoding="utf-8",
            )
        except OSError as e:
            logger.warning("session_save_failed", path=str(path), error=str(e))
            return False
        logger.info("session_saved", path=str(path), cookie_count=len(session.cookies))
        return True

    def load(self, vendor: str) -> Optional[Session]:
        path = self.path_for(vendor)
        if not path.exists():
            return None

        try:
            raw = path.read_text(encoding="utf-8")
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("session file is not a JSON object")
            return Session.model_validate(data)
        except (OSError, ValueError, RecursionError, ValidationError) as e:
            # json.JSONDecodeError is a ValueError; deep nesting raises RecursionError
            logger.warning("session_load_failed", path=str(path), error=str(e))
            return None

    def clear(self, vendor: str) -> None:
        path = self.path_for(vendor)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
