""""根据 .env 或默认值注册两个账户：admin 与 demo（口令以 PBKDF2 摘要存储）。

已存在的账户不会被覆盖，只打印提示。

可作为脚本执行，也可被测试直接导入调用（提供 run() 函数）"""
# scripts/seed_users.py
import os
import sys

# 确保脚本在控制台有输出；不影响主服务的日志设置
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("PYTHONUNBUFFERED", "1")

from pit.core.errors import AlreadyExistsError, StoreError  # noqa: E402
from pit.core.models_user import ACTIVITY_ACCOUNT  # noqa: E402
from pit.infra.logger import emit  # noqa: E402
from pit.services.users import Model, get_model  # noqa: E402

SEED_IP = "127.0.0.1"


def _get_env(k: str, default: str) -> str:
    v = os.getenv(k)
    return v if v is not None and v != "" else default


def ensure_user(model: Model, uid: str, password: str) -> str:
    try:
        user = model.register_with_password(uid, password, SEED_IP)
    except AlreadyExistsError:
        action = "exists"
    else:
        user.append_activity(ACTIVITY_ACCOUNT, "seeded", SEED_IP)
        action = "created"

    emit("seed_user", uid=uid, action=action)
    print(f"[seed_users] {action} user: {uid}", flush=True)
    return action


def run(model: Model = None) -> dict:
    model = model or get_model()
    emit("seed_begin", table=model.table_name)
    print("[seed_users] seeding users ...", flush=True)

    result = {}
    for uid_env, pw_env, uid_default, pw_default in (
        ("ADMIN_USERNAME", "ADMIN_PASSWORD", "admin", "admin"),
        ("DEMO_USERNAME", "DEMO_PASSWORD", "demo@pit", "demo"),
    ):
        uid = _get_env(uid_env, uid_default)
        result[uid] = ensure_user(model, uid, _get_env(pw_env, pw_default))

    emit("seed_done", status="ok")
    print("[seed_users] done.", flush=True)
    return result


if __name__ == "__main__":
    try:
        run()
        sys.exit(0)
    except StoreError as e:
        emit("seed_error", error=str(e))
        print(f"[seed_users] ERROR: {e}", file=sys.stderr, flush=True)
        sys.exit(1)
