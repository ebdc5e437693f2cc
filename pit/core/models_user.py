# pit/core/models_user.py
""""定义账户记录中的两类 JSON 结构：

UserInfo：公开字段 reg_ts / reg_ip（存于 info 列）

LogLine：单条活动日志 ts / ip / type / desc（存于 logs 列，按类别分组）

只声明数据结构，不负责读写。"""
import time

from pydantic import BaseModel, ConfigDict, Field

# 上层服务使用的活动类别；任意字符串类别都可写入
ACTIVITY_ACCOUNT = "account"
ACTIVITY_SHARDS = "shards"


def now_ts() -> int:
    return int(time.time())


class LogLine(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    ts: int
    ip: str
    log_type: str = Field(alias="type")
    desc: str


class UserInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    reg_ts: int = 0
    reg_ip: str = ""
