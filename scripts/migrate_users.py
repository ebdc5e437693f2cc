""""轻量迁移：创建 <prefix>_users 表（若不存在），不修改既有数据。

--drop：删除整张表（仅管理 / 测试用）。

可作为脚本执行，也可被测试直接导入调用（提供 run() 函数）"""
# scripts/migrate_users.py

import argparse
import os
import sys

# 确保脚本在控制台有输出；不影响主服务的日志设置
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("PYTHONUNBUFFERED", "1")

from pit.core.config import Settings, load_env_files  # noqa: E402
from pit.core.errors import StoreError  # noqa: E402
from pit.infra.db import TableManager, build_users_table, create_engine_for  # noqa: E402
from pit.infra.logger import emit  # noqa: E402


def _manager(settings: Settings) -> TableManager:
    return TableManager(
        create_engine_for(settings.database_url),
        build_users_table(settings.table_name, settings.default_capacity),
        poll_interval=settings.poll_interval,
    )


def run(settings: Settings = None, drop: bool = False) -> bool:
    if settings is None:
        load_env_files()
        settings = Settings.from_env()
    tables = _manager(settings)

    if drop:
        emit("migrate_users_drop", table=settings.table_name)
        print(f"[migrate_users] dropping {settings.table_name} ...", flush=True)
        ok = tables.delete_table()
    else:
        emit("migrate_users_begin", table=settings.table_name)
        print(f"[migrate_users] creating {settings.table_name} if not exists ...", flush=True)
        tables.init_table()
        ok = True

    emit("migrate_users_done", table=settings.table_name, status="ok" if ok else "failed")
    print(f"[migrate_users] {'done' if ok else 'failed'}.", flush=True)
    return ok


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="create or drop the users table")
    parser.add_argument("--drop", action="store_true", help="delete the table instead of creating it")
    args = parser.parse_args()
    try:
        sys.exit(0 if run(drop=args.drop) else 1)
    except StoreError as e:
        emit("migrate_users_error", error=str(e))
        print(f"[migrate_users] ERROR: {e}", file=sys.stderr, flush=True)
        sys.exit(1)
