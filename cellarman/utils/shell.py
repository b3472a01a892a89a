"""Shell 命令执行工具

构建子进程里的每个构建步骤、post_install 钩子、git clone 都经由 run_cmd，
失败统一抛 ExecutionError（带退出码和输出尾部）。
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path

from cellarman.core.exceptions import ExecutionError

logger = logging.getLogger(__name__)

# 错误信息中保留的输出尾部长度
OUTPUT_TAIL = 2000


@dataclass
class CommandResult:
    """命令执行结果（与 subprocess 解耦）"""

    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.returncode == 0


def run_cmd(
    cmd: str | list[str], *,
    cwd: str | Path = ".",
    env: dict[str, str] | None = None,
    label: str = "cmd",
    log_file: Path | None = None,
) -> CommandResult:
    """执行命令，失败抛 ExecutionError

    Args:
        cmd: 命令字符串（按 shlex 切分，不经过 shell）或参数列表
        cwd: 工作目录
        env: 环境变量（不传则继承当前进程）
        label: 日志标签
        log_file: 若指定，将命令行与 stdout/stderr 写入该文件
    """
    args = shlex.split(cmd) if isinstance(cmd, str) else list(cmd)
    logger.info("  %s: %s (cwd=%s)", label, shlex.join(args), cwd)
    try:
        r = subprocess.run(
            args, capture_output=True, text=True,
            cwd=str(cwd), env=env, check=False,
        )
    except OSError as e:
        raise ExecutionError(f"{label}无法执行: {e}", cmd=shlex.join(args)) from e

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        log_file.write_text(
            f"{shlex.join(args)}\n\n{r.stdout}{r.stderr}", encoding="utf-8",
        )

    result = CommandResult(returncode=r.returncode, stdout=r.stdout, stderr=r.stderr)
    if not result.success:
        raise ExecutionError(
            f"{label}失败 (rc={r.returncode}): {r.stderr[-500:]}",
            cmd=shlex.join(args),
            returncode=r.returncode,
            output=(r.stdout + r.stderr)[-OUTPUT_TAIL:],
        )
    return result
