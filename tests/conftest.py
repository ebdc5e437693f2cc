# tests/conftest.py
# 先设环境变量，再导入 pit（测试不落盘日志）
import os
os.environ["LOG_TO_FILE"] = "false"

import pytest

from pit.core.config import Settings
from pit.services.users import Model


@pytest.fixture
def settings(tmp_path):
    # 每个测试独立的 SQLite 文件；分页设小一点，覆盖多页扫描
    return Settings.build(
        prefix="test",
        database_url=f"sqlite:///{tmp_path / 'pit_test.db'}",
        secret=b"test-secret",
        poll_interval=0,
        scan_page_size=2,
    )


@pytest.fixture
def model(settings):
    return Model(settings)
