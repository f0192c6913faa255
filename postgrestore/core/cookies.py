"""
Binding between a session id and the client cookie.

The cookie carries only the sealed session id; the value map stays in the
database. A cookie that fails authentication is reported as "no id".
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Sequence, Union

from starlette.requests import Request
from starlette.responses import Response

from postgrestore.core.codecs import Codec, decode_multi, encode_multi
from postgrestore.core.errors import CodecError
from postgrestore.core.sessions import Session, SessionOptions

logger = logging.getLogger(__name__)

# Expires value sent with a deletion cookie
EXPIRED_AT = datetime(1970, 1, 1, 0, 0, 1, tzinfo=timezone.utc)


class CookieBinder:
    """Reads and writes the session id cookie through the configured codecs."""

    def __init__(self, codecs: Sequence[Codec]):
        self._codecs = codecs

    def read_id(self, request: Request, name: str) -> Optional[str]:
        """
        Recover the session id carried by the cookie called ``name``.

        Returns:
            The raw session id, or None if the cookie is absent or not authentic
        """
        token = request.cookies.get(name)
        if not token:
            return None
        try:
            session_id = decode_multi(name, token, self._codecs)
        except CodecError as e:
            logger.warning(
                f"Ignoring session cookie {name!r} that failed authentication",
                extra={"error_type": type(e).__name__},
            )
            return None
        if not isinstance(session_id, str) or not session_id:
            logger.warning(f"Ignoring session cookie {name!r} without a usable id")
            return None
        return session_id

    def bind(self, response: Response, session: Session) -> None:
        """Seal the session id into an outbound cookie using the session's options."""
        token = encode_multi(session.name, session.id, self._codecs)
        set_session_cookie(response, session.name, token, session.options)

    def expire(self, response: Response, session: Session) -> None:
        """Tell the client to drop the session cookie."""
        options = session.options.copy()
        options.max_age = -1
        set_session_cookie(response, session.name, "", options)


def set_session_cookie(response: Response, name: str, value: str, options: SessionOptions) -> None:
    """Issue a cookie; positive max_age persists it, zero scopes it to the browser session, negative deletes it."""
    if options.max_age > 0:
        max_age: Optional[int] = options.max_age
        expires: Union[int, datetime, None] = options.max_age
    elif options.max_age < 0:
        max_age = 0
        expires = EXPIRED_AT
    else:
        max_age = None
        expires = None

    response.set_cookie(
        key=name,
        value=value,
        max_age=max_age,
        expires=expires,
        path=options.path,
        domain=options.domain,
        secure=options.secure,
        httponly=options.httponly,
        samesite=options.samesite,
    )
