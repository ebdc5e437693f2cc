"""
模块职能：
- Model：账户存储（注册 / 查询 / 认证 / 全量列举），进程内一个实例；
- User：单个账户的内存状态与变更操作（启用 / 禁用 / 改口令 / 追加活动日志）。

并发：
- Model 为每个 uid 维护一把锁（弱引用注册表，用完即回收），注册的“查重 + 写入”以及
  User 的每次“重新读取-修改-整行写回”都在锁内完成，同进程内同一 uid 的多个 User 对象互不覆盖；
- 跨进程没有条件写，仍是最后写入者覆盖。

日志：
- user_register / user_register_exists / user_persist_error
- user_not_found / user_decode_error / user_read_error / user_scan_error
- auth_failed / auth_success / user_update / user_activity
"""
from __future__ import annotations

import threading
import weakref
from typing import Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from pit.core.codec import LogMap, UserRecord, decode_item, encode_item
from pit.core.config import Settings, load_env_files
from pit.core.errors import (
    AlreadyExistsError,
    NotFoundOrCorruptError,
    PersistFailedError,
    StoreUnavailableError,
    UserNotFoundError,
    UserRecordCorruptError,
)
from pit.core.models_user import LogLine, UserInfo, now_ts
from pit.core.security import digests_match, hash_password
from pit.infra.db import TableManager, build_users_table, create_engine_for
from pit.infra.logger import emit, emit_error


def normalize_uid(uid: str) -> str:
    # 去掉所有 "+"，避免 a+b@x / ab@x 这类伪重复账号
    return uid.replace("+", "")


class User:
    def __init__(self, model: "Model", record: UserRecord):
        self._model = model
        self.uid = record.uid
        self._refresh(record)

    def __repr__(self) -> str:
        return f"User(uid={self.uid!r}, enabled={self.enabled})"

    def to_record(self) -> UserRecord:
        return UserRecord(
            uid=self.uid,
            key=self.key,
            enabled=self.enabled,
            info=UserInfo(reg_ts=self.reg_ts, reg_ip=self.reg_ip),
            logs=self._logs,
        )

    def _refresh(self, record: UserRecord) -> None:
        self.key = record.key
        self.enabled = record.enabled
        self.reg_ts = record.info.reg_ts
        self.reg_ip = record.info.reg_ip
        self._logs: LogMap = {cat: list(lines) for cat, lines in record.logs.items()}

    def _mutate(self, event: str, change: Callable[[UserRecord], UserRecord], **fields) -> bool:
        """
        在 uid 锁内：重新读取当前行 -> 应用变更 -> 整行写回 -> 刷新本对象。
        同进程内同一 uid 的多个 User 对象不会互相覆盖；失败时本对象保持原状。
        """
        with self._model.lock_for(self.uid):
            try:
                current = self._model.load_record(self.uid)
            except NotFoundOrCorruptError:
                return False
            record = change(current)
            if not self._model.persist(record):
                return False
            self._refresh(record)
        emit(event, uid=self.uid, **fields)
        return True

    # ---- mutations ----

    def disable(self) -> bool:
        return self._mutate("user_update", lambda r: r.model_copy(update={"enabled": False}), fields=["enabled"])

    def enable(self) -> bool:
        return self._mutate("user_update", lambda r: r.model_copy(update={"enabled": True}), fields=["enabled"])

    def change_password(self, new_password: str) -> bool:
        key = self._model.hash_password(new_password)
        return self._mutate("user_update", lambda r: r.model_copy(update={"key": key}), fields=["key"])

    def append_activity(self, category: str, desc: str, ip: str) -> bool:
        line = LogLine(ts=now_ts(), ip=ip, type=category, desc=desc)

        def _append(r: UserRecord) -> UserRecord:
            logs = {cat: list(lines) for cat, lines in r.logs.items()}
            logs.setdefault(category, []).append(line)
            return r.model_copy(update={"logs": logs})

        return self._mutate("user_activity", _append, category=category)

    def activity(self) -> Dict[str, List[LogLine]]:
        return {cat: list(lines) for cat, lines in self._logs.items()}


class _UidLock:
    """可被弱引用的锁；注册表只持有弱引用，没有持有者时自动移除。"""

    __slots__ = ("_lock", "__weakref__")

    def __init__(self):
        self._lock = threading.Lock()

    def __enter__(self):
        self._lock.acquire()
        return self

    def __exit__(self, *exc):
        self._lock.release()
        return False


class Model:
    """
    账户存储。

    构造时挂接 <prefix>_users 表（不存在则创建并等待 ACTIVE，期间阻塞）。
    secret 只在构造时从 Settings 取一次。
    """

    def __init__(self, settings: Settings, tables: Optional[TableManager] = None):
        self.settings = settings
        self.prefix = settings.prefix
        self.table_name = settings.table_name
        self._secret = settings.secret
        if tables is None:
            engine = create_engine_for(settings.database_url)
            tables = TableManager(
                engine,
                build_users_table(self.table_name, settings.default_capacity),
                poll_interval=settings.poll_interval,
            )
        self.tables = tables
        # 只保存弱引用：没有线程持有或等待时条目自动消失
        self._locks: "weakref.WeakValueDictionary[str, _UidLock]" = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

        self.tables.init_table()

    def lock_for(self, uid: str) -> _UidLock:
        with self._locks_guard:
            lock = self._locks.get(uid)
            if lock is None:
                lock = _UidLock()
                self._locks[uid] = lock
            return lock

    def hash_password(self, password: str) -> str:
        return hash_password(password, self._secret)

    def persist(self, record: UserRecord) -> bool:
        try:
            self.tables.put_item(encode_item(record))
        except SQLAlchemyError as e:
            emit_error("user_persist_error", uid=record.uid, table=self.table_name, error=str(e))
            return False
        return True

    # ---- registration ----

    def register_with_digest(self, uid: str, digest: str, ip: str) -> User:
        uid = normalize_uid(uid)
        with self.lock_for(uid):
            try:
                self.load_user(uid)
            except UserNotFoundError:
                pass
            except UserRecordCorruptError:
                # 行存在但无法解码：不覆盖
                emit("user_register_exists", uid=uid, ip=ip, corrupt=True)
                raise AlreadyExistsError("existing user account (unreadable record)", uid=uid)
            except StoreUnavailableError as e:
                raise PersistFailedError(f"cannot check existing user: {e.message}", uid=uid) from e
            else:
                emit("user_register_exists", uid=uid, ip=ip)
                raise AlreadyExistsError("existing user account", uid=uid)

            record = UserRecord(
                uid=uid,
                key=digest,
                enabled=True,
                info=UserInfo(reg_ts=now_ts(), reg_ip=ip),
                logs={},
            )
            if not self.persist(record):
                raise PersistFailedError("error trying to store the user data", uid=uid)

        emit("user_register", uid=uid, ip=ip)
        return User(self, record)

    def register_with_password(self, uid: str, password: str, ip: str) -> User:
        return self.register_with_digest(uid, self.hash_password(password), ip)

    # ---- lookup ----

    def load_record(self, uid: str) -> UserRecord:
        """按原始 uid 强一致读取（不做 "+" 归一化）；失败抛 NotFoundOrCorruptError 的子类。"""
        try:
            item = self.tables.get_item_consistent(uid)
        except SQLAlchemyError as e:
            emit_error("user_read_error", uid=uid, error=str(e))
            raise StoreUnavailableError(str(e), uid=uid) from e
        if item is None:
            emit("user_not_found", level="DEBUG", uid=uid)
            raise UserNotFoundError("no such user", uid=uid)
        try:
            return decode_item(item)
        except UserRecordCorruptError as e:
            emit_error("user_decode_error", uid=uid, error=e.message)
            raise

    def load_user(self, uid: str) -> User:
        return User(self, self.load_record(uid))

    def get_by_id(self, uid: str) -> Optional[User]:
        try:
            return self.load_user(uid)
        except NotFoundOrCorruptError:
            return None

    def authenticate(self, uid: str, password: str) -> Optional[User]:
        user = self.get_by_id(uid)
        if user is None:
            emit("auth_failed", uid=uid, reason="not_found_or_corrupt")
            return None
        if not digests_match(self.hash_password(password), user.key):
            emit("auth_failed", uid=uid, reason="bad_password")
            return None
        if not user.enabled:
            emit("auth_failed", uid=uid, reason="disabled")
            return None
        emit("auth_success", uid=uid)
        return user

    def list_all(self) -> Optional[Dict[str, User]]:
        """全量列举；任何一行解码失败或扫描出错都整体返回 None。"""
        users: Dict[str, User] = {}
        try:
            for item in self.tables.scan(self.settings.scan_page_size):
                record = decode_item(item)
                users[record.uid] = User(self, record)
        except SQLAlchemyError as e:
            emit_error("user_scan_error", table=self.table_name, error=str(e))
            return None
        except UserRecordCorruptError as e:
            emit_error("user_decode_error", uid=e.context.get("uid"), error=e.message)
            return None
        return users

    def delete_table(self) -> bool:
        return self.tables.delete_table()


def get_model(settings: Optional[Settings] = None) -> Model:
    """进程入口用：未传入 Settings 时加载 .env 并从环境变量构造一次。"""
    if settings is None:
        load_env_files()
        settings = Settings.from_env()
    return Model(settings)
