from __future__ import annotations

from services.production.sessions import WizardSessions


class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_idle_sessions_are_dropped():
    clock = Clock()
    sessions = WizardSessions(idle_timeout=3600, clock=clock)
    abandoned = sessions.open(object())
    active = sessions.open(object())

    clock.now = 3000
    assert sessions.get(active) is not None

    clock.now = 3601
    assert sessions.get(abandoned) is None
    assert sessions.get(active) is not None
    assert len(sessions) == 1


def test_open_evicts_too():
    clock = Clock()
    sessions = WizardSessions(idle_timeout=60, clock=clock)
    sessions.open(object())

    clock.now = 61
    sessions.open(object())
    assert len(sessions) == 1


def test_close_is_idempotent():
    sessions = WizardSessions(idle_timeout=60)
    sid = sessions.open(object())
    sessions.close(sid)
    sessions.close(sid)
    assert sessions.get(sid) is None
