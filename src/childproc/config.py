"""childproc 环境变量配置管理。

环境变量:
    CHILDPROC_LOG_DEBUG: 日志调试模式
        - true/1/yes/on = 开启 (DEBUG 日志输出到临时文件)
        - false/0/no = 关闭 (默认，日志输出到 stderr)

    CHILDPROC_WATCHER: 子进程退出监视器后端
        - auto = 自动选择 (默认；Linux 用 pidfd，macOS/BSD 用 kqueue)
        - pidfd = 强制使用 pidfd_open
        - kqueue = 强制使用 kqueue
        - 忽略大小写，无效值按 auto 处理

    CHILDPROC_DRAIN_INTERVAL: 异步等待时排空输出管道的间隔（秒）
        - 默认 0.05 秒
        - 限制在 0.001-5.0 秒范围
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

__all__ = ["Config", "WatcherKind", "load_config", "get_config", "reload_config"]

DEFAULT_DRAIN_INTERVAL = 0.05


class WatcherKind(Enum):
    """退出监视器后端。

    - AUTO: 按平台自动选择
    - PIDFD: Linux pidfd_open + poll
    - KQUEUE: kqueue EVFILT_PROC / NOTE_EXIT
    """

    AUTO = "auto"
    PIDFD = "pidfd"
    KQUEUE = "kqueue"

    @classmethod
    def from_string(cls, value: str) -> "WatcherKind":
        """从字符串解析后端。

        Args:
            value: 后端字符串 (auto/pidfd/kqueue)

        Returns:
            对应的 WatcherKind 枚举值，无效值返回 AUTO
        """
        value = value.lower().strip()
        for kind in cls:
            if kind.value == value:
                return kind
        return cls.AUTO  # 默认值


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_watcher_kind(value: str | None) -> WatcherKind:
    """解析监视器后端环境变量。"""
    if not value:
        return WatcherKind.AUTO
    return WatcherKind.from_string(value)


def _parse_drain_interval(value: str | None) -> float:
    """解析排空间隔环境变量。"""
    if not value:
        return DEFAULT_DRAIN_INTERVAL
    try:
        interval = float(value)
        return max(0.001, min(interval, 5.0))  # 限制在 0.001-5 秒范围
    except ValueError:
        return DEFAULT_DRAIN_INTERVAL


def _generate_log_file_path() -> str:
    """生成日志文件路径。

    Returns:
        临时目录下的日志文件绝对路径
    """
    log_dir = Path(tempfile.gettempdir()) / "childproc"
    log_dir.mkdir(parents=True, exist_ok=True)

    # 生成带时间戳的文件名
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"childproc_debug_{timestamp}.log"

    return str(log_file.resolve())


@dataclass
class Config:
    """childproc 配置。

    Attributes:
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（当 log_debug=True 时自动设置）
        watcher: 退出监视器后端
        drain_interval: 异步等待时排空输出管道的间隔（秒）
    """

    log_debug: bool = False
    log_file: str | None = None
    watcher: WatcherKind = WatcherKind.AUTO
    drain_interval: float = DEFAULT_DRAIN_INTERVAL

    def __repr__(self) -> str:
        return (
            f"Config(log_debug={self.log_debug}, "
            f"log_file={self.log_file}, "
            f"watcher={self.watcher.value}, "
            f"drain_interval={self.drain_interval})"
        )


def load_config() -> Config:
    """从环境变量加载配置。"""
    log_debug = _parse_bool(os.environ.get("CHILDPROC_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        log_debug=log_debug,
        log_file=log_file,
        watcher=_parse_watcher_kind(os.environ.get("CHILDPROC_WATCHER")),
        drain_interval=_parse_drain_interval(os.environ.get("CHILDPROC_DRAIN_INTERVAL")),
    )


# 全局配置实例（延迟加载）
_config: Config | None = None


def get_config() -> Config:
    """获取全局配置实例。"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """重新加载配置（用于测试）。"""
    global _config
    _config = load_config()
    return _config
