"""
Anti-forgery token scraping.

The vendor has no API for its CSRF token, so it is read out of page markup.
Patterns are tried in order; swap this module for a real HTML parse without
touching the adapters.
"""
import re
from typing import Any, Optional, Pattern, Tuple

CSRF_FIELD_NAME = "csrfmiddlewaretoken"

TOKEN_PATTERNS: Tuple[Pattern[str], ...] = (
    # Django style hidden input
    re.compile(
        r"<input[^>]*name=[\"']csrfmiddlewaretoken[\"'][^>]*value=[\"']([^\"']+)[\"']",
        re.IGNORECASE,
    ),
    # generic csrf_token / csrf-token / csrftoken input
    re.compile(
        r"<input[^>]*name=[\"']csrf[_-]?token[\"'][^>]*value=[\"']([^\"']+)[\"']",
        re.IGNORECASE,
    ),
    re.compile(
        r"<meta[^>]*name=[\"']csrf[_-]?token[\"'][^>]*content=[\"']([^\"']+)[\"']",
        re.IGNORECASE,
    ),
)


def extract_csrf_token(html: Any) -> Optional[str]:
    """Return the first token found in `html`, or None (also for non-text bodies)."""
    if not html or not isinstance(html, str):
        return None

    for pattern in TOKEN_PATTERNS:
        match = pattern.search(html)
        if match and match.group(1):
            return match.group(1)

    return None
