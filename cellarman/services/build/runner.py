"""隔离构建运行器（父进程侧）

  1. 启动前建立子进程 -> 父进程的单向管道，写端 fd 通过 CELLARMAN_ERROR_PIPE 传给子进程
  2. 子进程环境只保留白名单变量，构建参数只有选项开关与版本规格
  3. 等待期间屏蔽父进程自身的 SIGINT，中断由子进程接收并回报
  4. 子进程结束后按 管道错误 > 中断 > 非零退出 > 空安装 的顺序判定失败
  5. 任何失败都删除整个 keg 目录（rack 变空则一并删除）后重新抛出
"""

from __future__ import annotations

import logging
import os
import shutil
import signal
import subprocess
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import cellarman
from cellarman.core.exceptions import (
    BuildInterruptedError,
    EmptyInstallationError,
    SuspiciousInstallationError,
)
from cellarman.core.keg import Keg
from cellarman.services.build.protocol import ERROR_PIPE_ENV, EXIT_INTERRUPTED, ErrorRecord
from cellarman.utils.signals import ignore_interrupts

if TYPE_CHECKING:
    from cellarman.core.config import Config
    from cellarman.core.options import Options
    from cellarman.core.protocols import Formula

logger = logging.getLogger(__name__)

DRIVER_MODULE = "cellarman.build_driver"


class IsolatedBuildRunner:
    """在独立子进程中执行包的构建步骤"""

    def __init__(self, config: Config) -> None:
        self.config = config

    def command(self, formula: Formula, flags: list[str]) -> list[str]:
        cmd = [sys.executable, "-m", DRIVER_MODULE, str(formula.path), *flags]
        if self.config.nice_build:
            nice = shutil.which("nice")
            if nice:
                cmd = [nice, *cmd]
        return cmd

    def environment(self, pipe_fd: int) -> dict[str, str]:
        env = {k: os.environ[k] for k in self.config.env_allowlist if k in os.environ}
        env.update(self.config.to_env())
        env[ERROR_PIPE_ENV] = str(pipe_fd)
        # 子进程需要能 import 当前这份 cellarman
        env["PYTHONPATH"] = str(Path(cellarman.__file__).resolve().parent.parent)
        return env

    def run(self, formula: Formula, options: Options, *,
            spec_flag: str = "", extra_flags: list[str] | None = None,
            interactive: bool = False) -> None:
        """构建 formula 到其 keg 目录，失败时回滚并抛出 BuildError"""
        flags = [*options.as_flags(), *(extra_flags or [])]
        if spec_flag:
            flags.append(spec_flag)
        try:
            self._spawn_and_wait(formula, flags, interactive)
            if Keg(formula.prefix, self.config).empty_installation():
                raise EmptyInstallationError(f"{formula.name} 构建后没有安装任何文件")
        except BaseException:
            self.rollback(formula)
            raise

    def _spawn_and_wait(self, formula: Formula, flags: list[str], interactive: bool) -> None:
        cmd = self.command(formula, flags)
        read_fd, write_fd = os.pipe()
        logger.debug("构建命令: %s", " ".join(cmd))
        try:
            proc = subprocess.Popen(
                cmd,
                env=self.environment(write_fd),
                pass_fds=(write_fd,),
                stdin=None if interactive else subprocess.DEVNULL,
            )
        except OSError:
            os.close(read_fd)
            os.close(write_fd)
            raise
        os.close(write_fd)

        chunks: list[bytes] = []
        interrupted = False
        try:
            with ignore_interrupts(quietly=True):
                with os.fdopen(read_fd, "rb") as reader:
                    while True:
                        chunk = reader.read(4096)
                        if not chunk:
                            break
                        chunks.append(chunk)
                returncode = proc.wait()
        except KeyboardInterrupt:
            # 子进程已收到同一个中断，这里只补记
            interrupted = True
            returncode = proc.wait()

        data = b"".join(chunks)
        if data:
            raise ErrorRecord.loads(data).to_exception()
        if interrupted or returncode in (EXIT_INTERRUPTED, -signal.SIGINT):
            raise BuildInterruptedError(f"{formula.name} 的构建被中断")
        if returncode != 0:
            raise SuspiciousInstallationError(
                f"可疑的安装失败: {formula.name} 构建进程退出码 {returncode}",
                {"returncode": returncode},
            )

    def rollback(self, formula: Formula) -> None:
        """删除部分构建产物"""
        keg = Keg(formula.prefix, self.config)
        if keg.exists():
            logger.warning("回滚 %s: 删除 %s", formula.name, formula.prefix)
        keg.uninstall()
