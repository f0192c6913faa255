"""
Test helper functions for building requests and reading response cookies
"""

from datetime import datetime, timedelta, timezone
from http.cookies import SimpleCookie
from typing import Dict, Optional

from starlette.requests import Request
from starlette.responses import Response

HASH_KEY = b"test-hash-key-0123456789abcdef-0123456789"
BLOCK_KEY = b"test-block-key-0123456789abcdef-012345678"
OLD_HASH_KEY = b"old-hash-key-0123456789abcdef-0123456789a"
OLD_BLOCK_KEY = b"old-block-key-0123456789abcdef-012345678a"


class FrozenClock:
    """Controllable, timezone-aware clock"""

    def __init__(self, start: Optional[datetime] = None):
        self.current = start or datetime.now(timezone.utc).replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


def make_request(cookies: Optional[Dict[str, str]] = None) -> Request:
    """Build a bare Starlette request carrying the given cookies"""
    headers = []
    if cookies:
        cookie_header = "; ".join(f"{name}={value}" for name, value in cookies.items())
        headers.append((b"cookie", cookie_header.encode("latin-1")))
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "query_string": b"",
        "headers": headers,
    }
    return Request(scope)


def response_cookies(response: Response) -> SimpleCookie:
    """Parse every Set-Cookie header of a response"""
    jar: SimpleCookie = SimpleCookie()
    for header in response.headers.getlist("set-cookie"):
        jar.load(header)
    return jar


def cookie_value(response: Response, name: str) -> str:
    """Return the value of the cookie ``name`` set on a response"""
    jar = response_cookies(response)
    assert name in jar, f"Cookie '{name}' was not set"
    return jar[name].value
