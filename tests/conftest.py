"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import shutil
import sys
from pathlib import Path
from typing import Callable

import pytest

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from childproc.runtime import Launcher  # noqa: E402

# 测试用假 CLI
FAKE_CLI = Path(__file__).parent / "fixtures" / "fake_cli.py"

# execv 不查 PATH，需要绝对路径
ENV_PATH = shutil.which("env") or "/usr/bin/env"


@pytest.fixture
def fake_cli() -> Callable[..., Launcher]:
    """构造运行假 CLI 的 Launcher。"""

    def make(*args: str) -> Launcher:
        launcher = Launcher(sys.executable, [str(FAKE_CLI), *args])
        assert not launcher.manages_process()
        assert not launcher.is_finished()
        return launcher

    return make


@pytest.fixture
def shell() -> Callable[[str], Launcher]:
    """构造 `env sh -c <cmd>` 的 Launcher。"""

    def make(cmd: str) -> Launcher:
        launcher = Launcher(ENV_PATH, ["sh", "-c", cmd])
        assert not launcher.manages_process()
        assert not launcher.is_finished()
        return launcher

    return make
