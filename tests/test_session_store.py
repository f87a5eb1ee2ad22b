from __future__ import annotations

import json
import os

from plantops.core.persistence.kv_store import JsonFileKeyValueStore, MemoryKeyValueStore
from plantops.core.session.models import SessionUser, Theme, UserRole
from plantops.core.session.store import SessionStore


KEYS = ("iot_token", "iot_user", "iot_last_login")


def _user(role: str = "operator") -> SessionUser:
    return SessionUser(id="op_1", username="operador", role=role, name="Operador Demo", permissions=["view_alerts", "view_dashboard"])


def test_authenticated_iff_token_and_user(kv, clock):
    store = SessionStore(kv=kv, clock=clock.time)
    assert store.is_authenticated() is False

    store.establish(token="t1", user=_user())
    assert store.is_authenticated() is True

    store.clear()
    assert store.is_authenticated() is False
    assert store.token is None and store.user is None


def test_establish_persists_three_keys(kv, clock):
    store = SessionStore(kv=kv, clock=clock.time)
    store.establish(token="t1", user=_user())

    assert kv.get("iot_token") == "t1"
    record = json.loads(kv.get("iot_user"))
    assert record["username"] == "operador"
    assert record["name"] == "Operador Demo"
    assert record["permissions"] == ["view_alerts", "view_dashboard"]
    assert kv.get("iot_last_login").endswith("Z")


def test_expiry_is_24_hours_from_last_login(kv, clock):
    store = SessionStore(kv=kv, clock=clock.time)
    store.establish(token="t1", user=_user())
    clock.advance(23 * 3600)
    assert store.is_expired() is False
    clock.advance(2 * 3600)
    assert store.is_expired() is True
    assert store.is_valid() is False


def test_missing_timestamp_counts_as_expired(clock):
    kv = MemoryKeyValueStore({"iot_token": "t1", "iot_user": json.dumps(_user().to_record())})
    store = SessionStore(kv=kv, clock=clock.time)
    snap = store.restore()
    assert snap.authenticated is True
    assert snap.expired is True


def test_restore_round_trips_through_file(tmp_path, clock):
    path = os.path.join(str(tmp_path), "runtime", "session.json")
    store = SessionStore(kv=JsonFileKeyValueStore(path), clock=clock.time)
    store.establish(token="t1", user=_user("supervisor"))

    again = SessionStore(kv=JsonFileKeyValueStore(path), clock=clock.time)
    snap = again.restore()
    assert snap.authenticated is True
    assert snap.expired is False
    assert snap.role == UserRole.supervisor


def test_corrupt_user_record_is_treated_as_absent(clock):
    kv = MemoryKeyValueStore({"iot_token": "t1", "iot_user": "{not json", "iot_last_login": "2023-11-14T22:13:20Z"})
    store = SessionStore(kv=kv, clock=clock.time)
    snap = store.restore()
    assert snap.authenticated is False
    for key in KEYS:
        assert kv.get(key) is None


def test_token_without_user_is_discarded_on_restore(clock):
    kv = MemoryKeyValueStore({"iot_token": "t1", "iot_user": "null", "iot_last_login": "2023-11-14T22:13:20Z", "iot_theme": "supervisor"})
    store = SessionStore(kv=kv, clock=clock.time)
    snap = store.restore()

    assert snap.authenticated is False
    assert store.token is None
    for key in KEYS:
        assert kv.get(key) is None
    assert snap.theme == Theme.supervisor


def test_unparseable_timestamp_keeps_session_but_expires(clock):
    kv = MemoryKeyValueStore({"iot_token": "t1", "iot_user": json.dumps(_user().to_record()), "iot_last_login": "yesterday"})
    store = SessionStore(kv=kv, clock=clock.time)
    snap = store.restore()
    assert snap.authenticated is True
    assert snap.expired is True


def test_clear_is_idempotent(kv, clock):
    store = SessionStore(kv=kv, clock=clock.time)
    store.clear()
    store.clear()
    for key in KEYS:
        assert kv.get(key) is None


def test_theme_survives_clear(kv, clock):
    store = SessionStore(kv=kv, clock=clock.time)
    store.set_theme(Theme.supervisor)
    store.clear()
    assert kv.get("iot_theme") == "supervisor"
    assert SessionStore(kv=kv, clock=clock.time).restore().theme == Theme.supervisor


def test_corrupt_session_file_is_quarantined(tmp_path):
    path = os.path.join(str(tmp_path), "runtime", "session.json")
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write("{broken")
    kv = JsonFileKeyValueStore(path)
    assert kv.keys() == []
    assert os.listdir(os.path.join(os.path.dirname(path), "backups"))
