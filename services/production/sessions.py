from __future__ import annotations
import logging
import time
import uuid
from typing import Callable

from app.core import config
from services.production.wizard import ProductionWizard

logger = logging.getLogger(__name__)


class WizardSessions:
    """In-memory wizard state, keyed by an opaque session id.

    Nothing here survives a restart; a wizard is ephemeral until its order
    is created. Sessions untouched for ``idle_timeout`` seconds are dropped
    on the next ``open`` or ``get``.
    """

    def __init__(self, idle_timeout: float | None = None, clock: Callable[[], float] = time.monotonic):
        self.idle_timeout = config.WIZARD_IDLE_TIMEOUT if idle_timeout is None else idle_timeout
        self._clock = clock
        self._sessions: dict[str, tuple[ProductionWizard, float]] = {}

    def _evict(self, now: float) -> None:
        stale = [sid for sid, (_, touched) in self._sessions.items() if now - touched > self.idle_timeout]
        for sid in stale:
            del self._sessions[sid]
        if stale:
            logger.info("dropped %d idle wizard session(s)", len(stale))

    def open(self, wizard: ProductionWizard) -> str:
        now = self._clock()
        self._evict(now)
        sid = uuid.uuid4().hex
        self._sessions[sid] = (wizard, now)
        return sid

    def get(self, sid: str) -> ProductionWizard | None:
        now = self._clock()
        self._evict(now)
        entry = self._sessions.get(sid)
        if entry is None:
            return None
        self._sessions[sid] = (entry[0], now)
        return entry[0]

    def close(self, sid: str) -> None:
        self._sessions.pop(sid, None)

    def __len__(self) -> int:
        return len(self._sessions)
