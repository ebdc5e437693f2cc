# pit/core/errors.py
"""
模块职能：账户存储的错误分类。

- 每个异常带稳定的 code，便于日志检索与测试断言；
- 对外的查询/变更接口仍返回 None / False（不区分原因），
  需要结构化原因时调用会抛异常的变体（load_user / register_*）。
"""
from __future__ import annotations


class StoreError(Exception):
    code = "store_error"

    def __init__(self, message: str = "", **context) -> None:
        self.message = message or self.code
        self.context = context
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"{self.code} -> {self.message}"


class ConfigurationError(StoreError):
    """缺少秘钥、配置值非法或后端存储不可达（启动期）。"""
    code = "config_invalid"


class AlreadyExistsError(StoreError):
    code = "user_exists"


class PersistFailedError(StoreError):
    code = "persist_failed"


class NotFoundOrCorruptError(StoreError):
    """查询失败的公共基类：不存在 / 记录损坏 / 读取出错，对外统一表现为 None。"""
    code = "user_unavailable"


class UserNotFoundError(NotFoundOrCorruptError):
    code = "user_not_found"


class UserRecordCorruptError(NotFoundOrCorruptError):
    code = "user_corrupt"


class StoreUnavailableError(NotFoundOrCorruptError):
    code = "store_unavailable"
