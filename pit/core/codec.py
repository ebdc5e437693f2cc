# pit/core/codec.py
"""
模块职能：账户记录与表行之间的序列化边界。

表行（全部为字符串）：
- uid      主键
- key      口令摘要
- info     公开字段 JSON（UserInfo）
- logs     活动日志 JSON：{类别: [LogLine, ...]}，保持插入顺序
- enabled  "1" / "0"

主要函数：
- encode_item(record) -> dict：写入前整行编码（总是整行覆盖）
- decode_item(item) -> UserRecord：读出后解码；任何缺字段 / JSON 错误都抛 UserRecordCorruptError
"""
from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, TypeAdapter, ValidationError

from pit.core.errors import UserRecordCorruptError
from pit.core.models_user import LogLine, UserInfo

PRIMARY_KEY = "uid"
ATTRIBUTES = (PRIMARY_KEY, "key", "info", "logs", "enabled")

ENABLED = "1"
DISABLED = "0"

LogMap = Dict[str, List[LogLine]]

# JSON null 视为空：info 取默认值，logs 为空表
_info_adapter = TypeAdapter(Optional[UserInfo])
_logs_adapter = TypeAdapter(Optional[LogMap])


class UserRecord(BaseModel):
    uid: str
    key: str
    enabled: bool = True
    info: UserInfo = UserInfo()
    logs: LogMap = {}


def encode_logs(logs: LogMap) -> str:
    return json.dumps(
        {cat: [line.model_dump(by_alias=True) for line in lines] for cat, lines in logs.items()},
        ensure_ascii=False,
    )


def encode_item(record: UserRecord) -> Dict[str, str]:
    return {
        PRIMARY_KEY: record.uid,
        "key": record.key,
        "info": record.info.model_dump_json(),
        "logs": encode_logs(record.logs),
        "enabled": ENABLED if record.enabled else DISABLED,
    }


def decode_item(item: Mapping[str, Any]) -> UserRecord:
    uid = item.get(PRIMARY_KEY)
    missing = [a for a in ATTRIBUTES if not isinstance(item.get(a), str)]
    if missing:
        raise UserRecordCorruptError(f"missing attributes: {', '.join(missing)}", uid=uid)

    try:
        info = _info_adapter.validate_json(item["info"]) or UserInfo()
    except ValidationError as e:
        raise UserRecordCorruptError(f"bad info JSON: {e.error_count()} error(s)", uid=uid) from e
    try:
        logs = _logs_adapter.validate_json(item["logs"]) or {}
    except ValidationError as e:
        raise UserRecordCorruptError(f"bad logs JSON: {e.error_count()} error(s)", uid=uid) from e

    return UserRecord(
        uid=uid,
        key=item["key"],
        # 只有 "0" 表示禁用
        enabled=item["enabled"] != DISABLED,
        info=info,
        logs=logs,
    )
