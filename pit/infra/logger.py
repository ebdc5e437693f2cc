"""
统一日志配置（控制台 + 文件），结构化输出（JSON 一行）。
- configure_logging(): 根据环境变量设置等级与文件轮转；宿主进程可以不调用，沿用自己的 handler。
- emit(event, level, **kwargs): 结构化日志（dict -> 一行），方便检索。
- emit_error(event, **kwargs): 同上，level=ERROR。
不要把明文口令或摘要传进来。
"""
import logging, json, os, pathlib
from logging.handlers import TimedRotatingFileHandler
from datetime import datetime


LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_TO_FILE = os.getenv("LOG_TO_FILE", "true").lower() == "true"
LOG_DIR = os.getenv("LOG_DIR", "logs")
LOG_FILE = os.getenv("LOG_FILE", "pit.log")
LOG_ROTATE_WHEN = os.getenv("LOG_ROTATE_WHEN", "midnight")
LOG_BACKUP_COUNT = int(os.getenv("LOG_BACKUP_COUNT", "7"))

LOGGER_NAME = "pit"

_configured = False

def configure_logging():
    global _configured
    if _configured:
        return

    level = getattr(logging, LEVEL, logging.INFO)

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(logging.Formatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    ))
    root.addHandler(console)

    if LOG_TO_FILE:
        pathlib.Path(LOG_DIR).mkdir(parents=True, exist_ok=True)
        fileh = TimedRotatingFileHandler(
            os.path.join(LOG_DIR, LOG_FILE),
            when=LOG_ROTATE_WHEN, backupCount=LOG_BACKUP_COUNT, encoding="utf-8",
        )
        fileh.setLevel(level)
        # 文件里只写 message，message 是纯 JSON，便于检索
        fileh.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(fileh)

    root.setLevel(level)
    _configured = True

_pit_logger = logging.getLogger(LOGGER_NAME)

def _now_iso():
    # 本地时区 + 毫秒，示例：2025-09-18T17:30:42.123+09:00
    return datetime.now().astimezone().isoformat(timespec="milliseconds")

def emit(event: str, level: str = "INFO", **kwargs):
    """
    结构化日志：默认 INFO；每条都带时间戳 ts（本地时区）。
    用法：emit("table_waiting", level="DEBUG", table="pit_users", status="MISSING")
    """
    lvl = getattr(logging, level.upper(), logging.INFO)
    if not _pit_logger.isEnabledFor(lvl):
        return
    rec = {"ts": _now_iso(), "level": level.upper(), "event": event, **kwargs}
    try:
        _pit_logger.log(lvl, json.dumps(rec, ensure_ascii=False))
    except (TypeError, ValueError):
        _pit_logger.log(lvl, str(rec))


def emit_error(event: str, **kwargs):
    """
    错误日志（level=ERROR），同样带 ts。
    用法：emit_error("user_persist_error", uid=..., error=str(e))
    """
    emit(event, level="ERROR", **kwargs)
