"""中断屏蔽作用域

临界区（加锁 / 解锁、依赖回滚）内收到的 SIGINT 先记下，
退出作用域、恢复原处理器后再以 KeyboardInterrupt 重新投递。
"""

from __future__ import annotations

import logging
import signal
import threading
from contextlib import contextmanager
from typing import Iterator

logger = logging.getLogger(__name__)


@contextmanager
def ignore_interrupts(quietly: bool = False) -> Iterator[None]:
    """屏蔽 SIGINT，作用域结束后补发

    quietly=False 时，收到中断会提示正在等待临界区结束。
    只能在主线程生效，其他线程中为空操作。
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    pending: list[int] = []

    def _defer(signum: int, _frame: object) -> None:
        if not quietly and not pending:
            logger.warning("收到中断，等待当前操作完成后退出...")
        pending.append(signum)

    previous = signal.signal(signal.SIGINT, _defer)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)
    if pending:
        raise KeyboardInterrupt
