"""
Callback correlator: matches external redirect callbacks to pending sessions.

When a session hands the user to an external application or browser
(3-D Secure, bank login), it registers the gateway's correlation token
here. The host later forwards every URL its app was asked to open; the
correlator recognizes ours by scheme and token.

Guarantees:
  - A registered token is matched at most once; later callbacks with the
    same URL are NoMatch.
  - NoMatch never has side effects, so hosts can chain URL handlers.
  - The token table is the only cross-session shared state and is
    guarded by a lock around the table itself.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional, Union
from urllib.parse import parse_qsl, urlsplit

from payment_engine.engine.errors import CallbackMismatch, ProtocolViolation

logger = logging.getLogger("payment_engine.correlator")


@dataclass(frozen=True)
class Matched:
    """A callback that belongs to a pending session."""

    token: str
    submission_id: str
    params: dict[str, str]


@dataclass(frozen=True)
class NoMatch:
    """A callback the correlator does not own."""

    error: CallbackMismatch


MatchResult = Union[Matched, NoMatch]
MatchHandler = Callable[[Matched], None]


@dataclass
class _Registration:
    submission_id: str
    on_match: Optional[MatchHandler]


class CallbackCorrelator:
    """Token table shared by all active sessions."""

    def __init__(self, scheme: str, token_param: str = "token"):
        self._scheme = scheme.lower()
        self._token_param = token_param
        self._pending: dict[str, _Registration] = {}
        self._lock = threading.Lock()

    @property
    def scheme(self) -> str:
        return self._scheme

    def register(
        self,
        token: str,
        submission_id: str,
        on_match: Optional[MatchHandler] = None,
    ) -> None:
        """
        Register a pending correlation token.

        Raises:
            ProtocolViolation: If the token is already held by a session.
        """
        with self._lock:
            if token in self._pending:
                raise ProtocolViolation(f"Correlation token already registered: {token}")
            self._pending[token] = _Registration(submission_id, on_match)
        logger.debug("Registered token for submission %s", submission_id)

    def deregister(self, token: str) -> bool:
        """Drop a token. Returns False if it was already matched or dropped."""
        with self._lock:
            return self._pending.pop(token, None) is not None

    def is_pending(self, token: str) -> bool:
        with self._lock:
            return token in self._pending

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def match(self, url: str) -> MatchResult:
        """
        Match an inbound callback URL against all registered tokens.

        On a match the token is removed from the table before the session's
        handler runs, so a second delivery of the same URL is NoMatch.
        """
        token, params = self._parse(url)
        if token is None:
            return NoMatch(CallbackMismatch(f"Not a payment callback: {url}"))

        with self._lock:
            registration = self._pending.pop(token, None)

        if registration is None:
            return NoMatch(CallbackMismatch("Callback token is not pending"))

        matched = Matched(token=token, submission_id=registration.submission_id, params=params)
        if registration.on_match is not None:
            registration.on_match(matched)
        return matched

    def _parse(self, url: str) -> tuple[Optional[str], dict[str, str]]:
        parts = urlsplit(url or "")
        if parts.scheme.lower() != self._scheme:
            return None, {}

        params = dict(parse_qsl(parts.query, keep_blank_values=True))
        token = params.pop(self._token_param, None)
        return (token or None), params
