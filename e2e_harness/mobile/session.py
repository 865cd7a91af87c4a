from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterator, Optional

from .appium_http_client import AppiumHTTPClient
from .config import SessionConfig
from .errors import SessionBusyError, SessionNotReadyError

LOG = logging.getLogger(__name__)

ClientFactory = Callable[[SessionConfig], AppiumHTTPClient]


class SessionStatus(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    CLOSING = "closing"


@dataclass(eq=False)
class Session:
    id: str
    config: SessionConfig
    client: AppiumHTTPClient
    status: SessionStatus = field(default=SessionStatus.OPEN)

    @property
    def is_open(self) -> bool:
        return self.status is SessionStatus.OPEN

    def require_open(self) -> None:
        if not self.is_open:
            raise SessionNotReadyError(f"Session {self.id} is {self.status.value}, expected open")


def default_client_factory(config: SessionConfig) -> AppiumHTTPClient:
    return AppiumHTTPClient(config.server_url, timeout_s=config.request_timeout_s)


class SessionManager:
    """
    Owns the lifecycle of remote automation sessions.

    At most one session is open at a time. `close` is idempotent, and
    `session()` guarantees a close on every exit path.
    """

    def __init__(self, client_factory: Optional[ClientFactory] = None) -> None:
        self._client_factory = client_factory or default_client_factory
        self.active: Optional[Session] = None

    def open(self, config: SessionConfig) -> Session:
        if self.active is not None and self.active.status is not SessionStatus.CLOSED:
            raise SessionBusyError(f"Session {self.active.id} is still {self.active.status.value}")

        config.validate_capabilities()
        client = self._client_factory(config)
        try:
            session_id = client.create_session(config.session_payload())
        except Exception:
            client.close()
            raise
        session = Session(id=session_id, config=config, client=client)
        self.active = session
        LOG.info("Opened %s session %s at %s", config.platform.value, session_id, config.server_url)
        return session

    def close(self, session: Optional[Session]) -> None:
        if session is None or session.status is not SessionStatus.OPEN:
            return
        session.status = SessionStatus.CLOSING
        try:
            session.client.delete_session()
        finally:
            session.status = SessionStatus.CLOSED
            session.client.close()
            if self.active is session:
                self.active = None
        LOG.info("Closed session %s", session.id)

    @contextmanager
    def session(self, config: SessionConfig) -> Iterator[Session]:
        session = self.open(config)
        try:
            yield session
        finally:
            self.close(session)
