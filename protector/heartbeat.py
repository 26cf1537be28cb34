"""Liveness tracking for long-running clients.

A client registers a session pointing at a message it already posted, then
pings. When pings stop for longer than the timeout, the sweep edits that
message to show it disconnected and forgets the session.
"""
import json
import time
import logging
from dataclasses import dataclass, field
from threading import Event, Lock, Thread
from typing import Callable, Dict, List, Optional

import requests

from .errors import UpstreamError
from .relay import disconnected_embed
from .signing import sign

logger = logging.getLogger(__name__)


@dataclass
class Session:
    session_id: str
    webhook_key: str
    message_id: str
    channel_id: Optional[str] = None
    embed: dict = field(default_factory=dict)
    last_heartbeat: float = 0.0


class SessionRegistry:
    def __init__(self, timeout: float, on_timeout: Callable[[Session], None]):
        self.timeout = timeout
        self.on_timeout = on_timeout
        self._sessions: Dict[str, Session] = {}
        self._lock = Lock()

    def register(self, session_id, webhook_key, message_id, channel_id=None, embed=None, now=None) -> Session:
        session = Session(
            session_id=session_id,
            webhook_key=webhook_key,
            message_id=str(message_id),
            channel_id=str(channel_id) if channel_id is not None else None,
            embed=embed or {},
            last_heartbeat=time.time() if now is None else now,
        )
        with self._lock:
            self._sessions[session_id] = session
        logger.info("session %s registered for message %s", session_id, session.message_id)
        return session

    def ping(self, session_id, now=None) -> bool:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            session.last_heartbeat = time.time() if now is None else now
            return True

    def get(self, session_id) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(session_id)

    def sweep(self, now=None) -> List[Session]:
        """Run the disconnect edit once for every lapsed session, then drop it."""
        now = time.time() if now is None else now
        with self._lock:
            expired = [s for s in self._sessions.values() if now - s.last_heartbeat > self.timeout]

        for session in expired:
            try:
                self.on_timeout(session)
                logger.info("session %s timed out, message %s marked disconnected",
                            session.session_id, session.message_id)
            except Exception:
                logger.exception("disconnect edit failed for session %s", session.session_id)
            with self._lock:
                # a re-registration during the edit replaces the object; keep that one
                if self._sessions.get(session.session_id) is session:
                    del self._sessions[session.session_id]
        return expired

    def __len__(self):
        with self._lock:
            return len(self._sessions)


class Sweeper:
    """Daemon thread running one sweep per tick. Ticks never overlap."""

    def __init__(self, registry: SessionRegistry, interval: float, pipeline=None, clock=time.time):
        self.registry = registry
        self.interval = interval
        self.pipeline = pipeline
        self.clock = clock
        self._stop = Event()
        self._thread = None

    def start(self):
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = Thread(target=self._run, name="heartbeat-sweeper", daemon=True)
        self._thread.start()
        logger.info("sweeper started, interval=%ss timeout=%ss", self.interval, self.registry.timeout)

    def stop(self, timeout=None):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def tick(self):
        now = self.clock()
        self.registry.sweep(now)
        if self.pipeline is not None:
            dropped = self.pipeline.purge(now)
            if dropped:
                logger.debug("purged %d idle rate-limit keys", dropped)

    def _run(self):
        while not self._stop.wait(self.interval):
            try:
                self.tick()
            except Exception:
                logger.exception("sweep failed")


class SignedStatusPatcher:
    """Sends the disconnect edit to a remote ``/status-patch`` endpoint."""

    def __init__(self, url: str, secret: str, timeout: float = 10.0, session=None):
        self.url = url
        self.secret = secret
        self.timeout = timeout
        self.http = session or requests.Session()

    def __call__(self, session: Session) -> None:
        raw_body = json.dumps({
            "vault_id": session.webhook_key,
            "message_id": session.message_id,
            "embeds": [disconnected_embed(session.embed)],
        })
        timestamp = str(int(time.time()))
        try:
            resp = self.http.post(
                self.url,
                data=raw_body.encode("utf-8"),
                headers={
                    "Content-Type": "application/json",
                    "x-status-timestamp": timestamp,
                    "x-status-signature": sign(timestamp, raw_body, self.secret),
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise UpstreamError(f"status-patch call failed: {e}") from e
        if not resp.ok:
            raise UpstreamError(f"status-patch returned {resp.status_code}: {resp.text}")
