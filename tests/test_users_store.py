# tests/test_users_store.py
"""注册 / 查询 / 认证 / 启停 / 改口令。"""
import time

import pytest
from sqlalchemy.exc import OperationalError

from pit.core.errors import (
    AlreadyExistsError,
    PersistFailedError,
    UserNotFoundError,
    UserRecordCorruptError,
)
from pit.core.security import hash_password
from pit.services.users import Model


def _boom(*args, **kwargs):
    raise OperationalError("INSERT", {}, Exception("disk I/O error"))


def test_register_new_user(model):
    before = int(time.time())
    user = model.register_with_password("alice@x.com", "pw1", "10.0.0.1")
    after = int(time.time())

    assert user.uid == "alice@x.com"
    assert user.enabled is True
    assert user.reg_ip == "10.0.0.1"
    assert before <= user.reg_ts <= after
    assert user.activity() == {}
    # 只存摘要，不存明文
    assert user.key == hash_password("pw1", b"test-secret")
    assert user.key != "pw1"


def test_register_with_digest_stores_digest_as_given(model):
    model.register_with_digest("bob@x.com", "precomputed", "10.0.0.2")
    assert model.get_by_id("bob@x.com").key == "precomputed"


def test_register_strips_plus(model):
    user = model.register_with_password("a+b+@x.com", "pw1", "1.2.3.4")
    assert user.uid == "ab@x.com"


def test_lookup_does_not_normalize(model):
    model.register_with_password("a+b@x.com", "pw1", "1.2.3.4")

    assert model.get_by_id("a+b@x.com") is None
    found = model.get_by_id("ab@x.com")
    assert found is not None
    assert found.uid == "ab@x.com"


def test_duplicate_normalized_uid_rejected(model):
    first = model.register_with_password("ab@x.com", "pw1", "1.1.1.1")

    with pytest.raises(AlreadyExistsError) as ei:
        model.register_with_password("a+b@x.com", "other", "2.2.2.2")
    assert ei.value.code == "user_exists"

    stored = model.get_by_id("ab@x.com")
    assert stored.key == first.key
    assert stored.reg_ip == "1.1.1.1"


def test_register_persist_failure(model, monkeypatch):
    monkeypatch.setattr(model.tables, "put_item", _boom)
    with pytest.raises(PersistFailedError):
        model.register_with_password("carol@x.com", "pw", "1.1.1.1")
    monkeypatch.undo()
    assert model.get_by_id("carol@x.com") is None


def test_reload_preserves_public_fields(model):
    user = model.register_with_password("dave@x.com", "pw", "192.168.1.9")
    assert user.disable()

    back = model.get_by_id("dave@x.com")
    assert back.enabled is False
    assert back.reg_ts == user.reg_ts
    assert back.reg_ip == "192.168.1.9"
    assert back.key == user.key


def test_load_user_reports_cause(model):
    with pytest.raises(UserNotFoundError):
        model.load_user("ghost@x.com")

    model.register_with_password("eve@x.com", "pw", "1.1.1.1")
    item = model.tables.get_item_consistent("eve@x.com")
    item["info"] = "{broken"
    model.tables.put_item(item)

    with pytest.raises(UserRecordCorruptError):
        model.load_user("eve@x.com")
    # 对外不区分“不存在”和“记录损坏”
    assert model.get_by_id("eve@x.com") is None
    assert model.get_by_id("ghost@x.com") is None


def test_read_error_is_absence(model, monkeypatch):
    model.register_with_password("frank@x.com", "pw", "1.1.1.1")
    monkeypatch.setattr(model.tables, "get_item_consistent", _boom)
    assert model.get_by_id("frank@x.com") is None
    assert model.authenticate("frank@x.com", "pw") is None


def test_authenticate(model):
    model.register_with_password("gina@x.com", "pw1", "1.1.1.1")

    user = model.authenticate("gina@x.com", "pw1")
    assert user is not None and user.uid == "gina@x.com"
    assert model.authenticate("gina@x.com", "wrong") is None
    assert model.authenticate("nobody@x.com", "pw1") is None


def test_disable_blocks_and_enable_restores(model):
    user = model.register_with_password("hank@x.com", "pw1", "1.1.1.1")

    assert user.disable() is True
    assert model.authenticate("hank@x.com", "pw1") is None

    assert user.enable() is True
    assert model.authenticate("hank@x.com", "pw1") is not None


def test_disable_on_rehydrated_user(model):
    model.register_with_password("ivy@x.com", "pw1", "1.1.1.1")
    model.get_by_id("ivy@x.com").disable()
    assert model.authenticate("ivy@x.com", "pw1") is None


def test_change_password(model):
    user = model.register_with_password("jack@x.com", "old", "1.1.1.1")

    assert user.change_password("new") is True
    assert model.authenticate("jack@x.com", "old") is None
    assert model.authenticate("jack@x.com", "new") is not None


def test_failed_persist_keeps_previous_state(model, monkeypatch):
    user = model.register_with_password("kim@x.com", "pw", "1.1.1.1")
    old_key = user.key
    monkeypatch.setattr(model.tables, "put_item", _boom)

    assert user.disable() is False
    assert user.enabled is True
    assert user.change_password("other") is False
    assert user.key == old_key
    assert user.append_activity("account", "login", "1.1.1.1") is False
    assert user.activity() == {}


def test_secret_scopes_digests(settings, model):
    model.register_with_password("lee@x.com", "pw", "1.1.1.1")
    other = Model(settings.model_copy(update={"secret": b"another-secret"}))
    assert other.get_by_id("lee@x.com") is not None
    assert other.authenticate("lee@x.com", "pw") is None


def test_register_never_overwrites_unreadable_record(model):
    model.tables.put_item({"uid": "mo@x.com", "key": "k", "info": "{}", "logs": "oops", "enabled": "1"})
    with pytest.raises(AlreadyExistsError):
        model.register_with_password("mo@x.com", "pw", "1.1.1.1")
    assert model.tables.get_item_consistent("mo@x.com")["logs"] == "oops"


def test_register_read_failure(model, monkeypatch):
    monkeypatch.setattr(model.tables, "get_item_consistent", _boom)
    with pytest.raises(PersistFailedError):
        model.register_with_password("ned@x.com", "pw", "1.1.1.1")


def test_lookup_row_with_null_logs(model):
    model.tables.put_item({
        "uid": "old@x.com",
        "key": hash_password("pw", b"test-secret"),
        "info": '{"reg_ts": 1400000000, "reg_ip": "8.8.8.8"}',
        "logs": "null",
        "enabled": "1",
    })

    user = model.get_by_id("old@x.com")
    assert user is not None
    assert user.activity() == {}
    assert user.reg_ts == 1400000000
    assert model.authenticate("old@x.com", "pw") is not None

    assert user.append_activity("account", "first", "8.8.8.8")
    assert model.tables.get_item_consistent("old@x.com")["logs"] != "null"
    assert list(model.list_all()) == ["old@x.com"]
