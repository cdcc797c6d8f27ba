import pytest

from salevest import events
from salevest.database import _normalize_url, db_session, get_db


def event_names(session_factory):
    with db_session(session_factory) as s:
        return [r.name for r in events.list_events(s)]


def test_get_db_commits_when_the_request_succeeds(session_factory):
    gen = get_db(session_factory)
    db = next(gen)
    events.emit(db, "sale", "Example", a=1)
    with pytest.raises(StopIteration):
        next(gen)
    assert event_names(session_factory) == ["Example"]


def test_get_db_rolls_back_when_the_request_fails(session_factory):
    gen = get_db(session_factory)
    db = next(gen)
    events.emit(db, "sale", "Example", a=1)
    with pytest.raises(RuntimeError):
        gen.throw(RuntimeError("handler failed"))
    assert event_names(session_factory) == []


def test_postgres_scheme_is_normalized():
    assert _normalize_url("postgres://u:p@h/db") == "postgresql://u:p@h/db"
    assert _normalize_url("sqlite://") == "sqlite://"
