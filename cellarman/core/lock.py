"""跨进程包锁

每个包一个锁文件 <state_dir>/locks/<name>.lock，使用 fcntl.flock
独占非阻塞加锁；被其他进程持有时立即失败（OperationInProgressError），
不排队等待。

LockSet 是一次顶层安装的进程级锁登记表：
  - 登记表非空时再次加锁为空操作，调用方不是持有者
  - 加锁顺序固定（根包在前），中途失败则释放已拿到的锁
  - 只有持有者释放；释放后登记表清空
"""

from __future__ import annotations

import fcntl
import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator

from cellarman.core.exceptions import OperationInProgressError
from cellarman.utils.signals import ignore_interrupts

logger = logging.getLogger(__name__)


class FormulaLock:
    """单个包的文件锁"""

    def __init__(self, name: str, locks_dir: Path) -> None:
        self.name = name
        self.path = locks_dir / f"{name.replace('/', '--')}.lock"
        self._fd: int | None = None

    @property
    def locked(self) -> bool:
        return self._fd is not None

    def lock(self) -> None:
        if self._fd is not None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(self.path), os.O_RDWR | os.O_CREAT, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            raise OperationInProgressError(self.name) from None
        except BaseException:
            os.close(fd)
            raise
        self._fd = fd
        logger.debug("已加锁: %s", self.path)

    def unlock(self) -> None:
        if self._fd is None:
            return
        try:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
        finally:
            os.close(self._fd)
            self._fd = None
        logger.debug("已解锁: %s", self.path)


class LockSet:
    """进程级锁登记表

    加锁时记下持有者（owner），释放只对持有者生效；
    即使加锁后的中断补发打断了返回值，持有者仍能正确释放。
    """

    def __init__(self, locks_dir: Path) -> None:
        self.locks_dir = locks_dir
        self._held: list[FormulaLock] = []
        self._owner: object | None = None

    def __bool__(self) -> bool:
        return bool(self._held)

    @property
    def names(self) -> list[str]:
        return [lk.name for lk in self._held]

    def is_holder(self, owner: object) -> bool:
        return bool(self._held) and self._owner is owner

    def acquire(self, names: Iterable[str], owner: object) -> bool:
        """加锁；登记表已非空时为空操作。返回 owner 是否成为持有者"""
        with ignore_interrupts():
            if self._held:
                return False
            ordered = list(dict.fromkeys(names))
            acquired: list[FormulaLock] = []
            try:
                for name in ordered:
                    lk = FormulaLock(name, self.locks_dir)
                    lk.lock()
                    acquired.append(lk)
            except BaseException:
                for lk in reversed(acquired):
                    lk.unlock()
                raise
            self._held = acquired
            self._owner = owner
            logger.info("已锁定 %d 个包: %s", len(acquired), ", ".join(ordered))
            return True

    def release(self, owner: object) -> bool:
        """只有持有者能释放；释放后登记表清空"""
        if not self.is_holder(owner):
            return False
        with ignore_interrupts():
            held, self._held, self._owner = self._held, [], None
            for lk in reversed(held):
                lk.unlock()
        return True

    @contextmanager
    def hold(self, names: Iterable[str], owner: object | None = None) -> Iterator[bool]:
        """作用域加锁，任何退出路径上由持有者释放；产出是否为持有者"""
        owner = owner if owner is not None else object()
        try:
            yield self.acquire(names, owner)
        finally:
            self.release(owner)
