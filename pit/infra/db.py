""""模块职能：

根据 DATABASE_URL 创建 SQLAlchemy 引擎，声明 <prefix>_users 表（单一字符串哈希键 uid）

TableManager：挂接 / 建表 / 轮询表状态 / 删除表，并提供单行读写与全表扫描

主要函数：

create_engine_for(url)：创建引擎（SQLite 允许跨线程使用同一连接池）

build_users_table(name)：声明表结构（uid/key/info/logs/enabled 均为字符串）

TableManager.init_table()：表不存在时建表，然后每 poll_interval 秒检查一次，直到 ACTIVE；
没有超时与重试上限，持续失败会一直阻塞"""
from __future__ import annotations

import time
from typing import Callable, Dict, Iterator, Optional

from sqlalchemy import Column, MetaData, String, Table, Text, create_engine, delete, inspect, insert, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from pit.core.codec import PRIMARY_KEY
from pit.core.errors import ConfigurationError
from pit.infra.logger import emit, emit_error

TABLE_SUFFIX = "users"
STATUS_ACTIVE = "ACTIVE"
STATUS_MISSING = "MISSING"


def table_name_for(prefix: str) -> str:
    return f"{prefix}_{TABLE_SUFFIX}"


def create_engine_for(url: str) -> Engine:
    kwargs = {}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        # 内存库只有一个连接可见
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    try:
        return create_engine(url, **kwargs)
    except (ArgumentError, ImportError) as e:
        raise ConfigurationError(f"cannot create engine for {url!r}: {e}") from e


def build_users_table(name: str, capacity: int = 5) -> Table:
    return Table(
        name,
        MetaData(),
        Column(PRIMARY_KEY, String(255), primary_key=True),
        Column("key", String(255), nullable=False),
        Column("info", Text, nullable=False),
        Column("logs", Text, nullable=False),
        Column("enabled", String(1), nullable=False),
        # 名义读写容量：SQL 后端没有配额概念，只记录下来
        info={"read_capacity": capacity, "write_capacity": capacity},
    )


class TableManager:
    def __init__(
        self,
        engine: Engine,
        table: Table,
        *,
        poll_interval: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.engine = engine
        self.table = table
        self.poll_interval = poll_interval
        self._sleep = sleep

    @property
    def name(self) -> str:
        return self.table.name

    # ---- lifecycle ----

    def describe_table(self) -> str:
        """ACTIVE / MISSING；连接或查询失败时抛 SQLAlchemyError。"""
        with self.engine.connect() as conn:
            if not inspect(conn).has_table(self.name):
                return STATUS_MISSING
            conn.execute(select(self.table.c[PRIMARY_KEY]).limit(1)).all()
        return STATUS_ACTIVE

    def create_table(self) -> None:
        self.table.create(bind=self.engine, checkfirst=True)

    def init_table(self) -> None:
        try:
            status = self.describe_table()
        except SQLAlchemyError as e:
            emit_error("table_describe_error", table=self.name, error=str(e))
            status = STATUS_MISSING

        if status != STATUS_ACTIVE:
            emit("table_create", table=self.name, hash_key=PRIMARY_KEY, **self.table.info)
            try:
                self.create_table()
            except SQLAlchemyError as e:
                emit_error("table_create_error", table=self.name, error=str(e))

        while status != STATUS_ACTIVE:
            try:
                status = self.describe_table()
            except SQLAlchemyError as e:
                emit_error("table_describe_error", table=self.name, error=str(e))
                status = STATUS_MISSING
            if status == STATUS_ACTIVE:
                break
            emit("table_waiting", level="DEBUG", table=self.name, status=status)
            self._sleep(self.poll_interval)
            # 建表失败后只能在下一轮重新尝试创建
            if status == STATUS_MISSING:
                try:
                    self.create_table()
                except SQLAlchemyError as e:
                    emit_error("table_create_error", table=self.name, error=str(e))

        emit("table_active", table=self.name)

    def delete_table(self) -> bool:
        """管理 / 测试用：删除整张表。"""
        try:
            status = self.describe_table()
        except SQLAlchemyError as e:
            emit_error("table_delete_error", table=self.name, error=str(e))
            return False
        if status != STATUS_ACTIVE:
            emit_error("table_delete_error", table=self.name, error="table not found")
            return False
        try:
            self.table.drop(bind=self.engine)
        except SQLAlchemyError as e:
            emit_error("table_delete_error", table=self.name, error=str(e))
            return False
        emit("table_delete", table=self.name)
        return True

    # ---- items ----

    def get_item_consistent(self, uid: str) -> Optional[Dict[str, str]]:
        # 每次使用新连接读取已提交数据，即强一致读
        with self.engine.connect() as conn:
            row = conn.execute(
                select(self.table).where(self.table.c[PRIMARY_KEY] == uid)
            ).mappings().first()
        return dict(row) if row is not None else None

    def put_item(self, item: Dict[str, str]) -> None:
        """整行覆盖写：同一事务内先删后插。"""
        with self.engine.begin() as conn:
            conn.execute(delete(self.table).where(self.table.c[PRIMARY_KEY] == item[PRIMARY_KEY]))
            conn.execute(insert(self.table).values(**item))

    def scan(self, page_size: int = 100) -> Iterator[Dict[str, str]]:
        """全表扫描，按 uid 做 keyset 分页。"""
        pk = self.table.c[PRIMARY_KEY]
        last: Optional[str] = None
        while True:
            stmt = select(self.table).order_by(pk).limit(page_size)
            if last is not None:
                stmt = stmt.where(pk > last)
            with self.engine.connect() as conn:
                rows = [dict(r) for r in conn.execute(stmt).mappings().all()]
            yield from rows
            if len(rows) < page_size:
                return
            last = rows[-1][PRIMARY_KEY]
