"""childproc 命令行入口。

用法:
    childproc [--timeout SECONDS] [--input TEXT] [--quiet] PATH [ARG ...]

PATH 不经过 shell，也不在 PATH 中查找，直接作为 argv[0] 执行。
子进程的 stdout/stderr 原样写到本进程的 stdout/stderr，
退出码与 shell 约定一致（被信号终止时为 128 + 信号值，超时为 124）。
"""

from __future__ import annotations

import argparse
import functools
import logging
import sys

import anyio

from .config import Config, get_config
from .runtime import run

__all__ = ["build_parser", "configure_logging", "main"]

logger = logging.getLogger(__name__)

# 与 coreutils timeout(1) 一致
TIMEOUT_EXIT_CODE = 124


def configure_logging(config: Config) -> None:
    """配置日志输出。"""
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        # LOG_DEBUG 模式：输出到临时文件
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        # 默认模式：输出到 stderr
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        log_handlers.append(stderr_handler)
        log_level = logging.INFO

    # 配置 root logger（第三方库）为 WARNING，减少噪音
    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
    )
    # 只对 childproc 命名空间启用详细日志
    logging.getLogger("childproc").setLevel(log_level)


def build_parser() -> argparse.ArgumentParser:
    """构建命令行解析器。"""
    parser = argparse.ArgumentParser(
        prog="childproc",
        description="Run one command with its standard channels piped and report how it ended.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="kill the command after this many seconds",
    )
    parser.add_argument(
        "--input",
        default=None,
        help="text written to the command's stdin before it is closed",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="do not log the termination summary",
    )
    parser.add_argument("path", help="executable, passed as argv[0]")
    parser.add_argument("args", nargs=argparse.REMAINDER, help="arguments for the command")
    return parser


def main(argv: list[str] | None = None) -> int:
    """主入口点。

    Returns:
        子进程的 shell 风格退出码
    """
    options = build_parser().parse_args(argv)
    config = get_config()
    configure_logging(config)
    logger.debug(f"Loaded {config!r}")

    stdin_bytes = options.input.encode("utf-8") if options.input is not None else None

    try:
        result = anyio.run(
            functools.partial(
                run,
                options.path,
                options.args,
                stdin_bytes=stdin_bytes,
                timeout=options.timeout,
            )
        )
    except TimeoutError:
        sys.stderr.write(f"childproc: {options.path} timed out after {options.timeout}s\n")
        sys.stderr.flush()
        return TIMEOUT_EXIT_CODE

    sys.stdout.buffer.write(result.stdout)
    sys.stdout.buffer.flush()
    sys.stderr.buffer.write(result.stderr)
    sys.stderr.buffer.flush()

    if not options.quiet:
        logger.info(f"{options.path} {result.exit_status} after {result.duration_ms:.1f} ms")

    return result.exit_status.shell_code


if __name__ == "__main__":
    sys.exit(main())
