""""列出全部账户：uid、启用状态、注册时间 / IP、各类别活动条数。

任何一条记录损坏都会导致整体失败（返回 None，退出码 1）。"""
# scripts/list_users.py
import os
import sys
from datetime import datetime, timezone

os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("PYTHONUNBUFFERED", "1")

from pit.core.errors import StoreError  # noqa: E402
from pit.infra.logger import emit  # noqa: E402
from pit.services.users import Model, get_model  # noqa: E402


def _fmt_ts(ts: int) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def run(model: Model = None):
    model = model or get_model()
    users = model.list_all()
    if users is None:
        print("[list_users] ERROR: cannot list users (see log)", file=sys.stderr, flush=True)
        return None

    rows = []
    for uid in sorted(users):
        u = users[uid]
        counts = {cat: len(lines) for cat, lines in u.activity().items()}
        rows.append({
            "uid": uid,
            "enabled": u.enabled,
            "reg_ts": u.reg_ts,
            "reg_ip": u.reg_ip,
            "activity": counts,
        })
        print(f"{uid}\t{'enabled' if u.enabled else 'disabled'}\t{_fmt_ts(u.reg_ts)}\t{u.reg_ip}\t{counts}",
              flush=True)

    emit("list_users_done", count=len(rows))
    return rows


if __name__ == "__main__":
    try:
        sys.exit(0 if run() is not None else 1)
    except StoreError as e:
        emit("list_users_error", error=str(e))
        print(f"[list_users] ERROR: {e}", file=sys.stderr, flush=True)
        sys.exit(1)
