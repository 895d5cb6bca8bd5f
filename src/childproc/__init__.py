"""childproc - 单个子进程的启动与托管。

以非阻塞的方式启动一个子进程：stdin/stdout/stderr 全部经由自有管道，
可轮询状态、写入输入、增量读取输出，最终取得退出状态，不泄漏描述符，
不留下僵尸进程。

环境变量:
    CHILDPROC_LOG_DEBUG: 日志调试模式 (默认 false)
    CHILDPROC_WATCHER: 退出监视器后端 auto/pidfd/kqueue (默认 auto)
    CHILDPROC_DRAIN_INTERVAL: 异步等待时排空输出的间隔 (默认 0.05s)

用法:
    from childproc import Launcher
"""

__version__ = "0.1.0"

from .runtime import (
    ChildProcError,
    CompletedRun,
    ExitStatus,
    InvalidStateError,
    Launcher,
    LauncherState,
    SyscallError,
    Termination,
    run,
    wait_finished,
)

__all__ = [
    "__version__",
    "ChildProcError",
    "CompletedRun",
    "ExitStatus",
    "InvalidStateError",
    "Launcher",
    "LauncherState",
    "SyscallError",
    "Termination",
    "run",
    "wait_finished",
]
