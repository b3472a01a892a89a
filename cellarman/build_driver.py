"""构建子进程入口

    python -m cellarman.build_driver <descriptor> [--with-x ...] [--devel|--HEAD]
        [--interactive] [--build-bottle] [--bottle-arch=ARCH] [--verbose] [--debug]

由 IsolatedBuildRunner 在干净环境中启动。错误管道的文件描述符号
从环境变量 CELLARMAN_ERROR_PIPE 读取；出错时写入一条 JSON 错误记录后
以 1 退出（中断以 130 退出），成功时什么都不写、以 0 退出。
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys
import tempfile
from pathlib import Path

import click

from cellarman.core.config import Config
from cellarman.core.exceptions import ValidationError
from cellarman.core.keg import Keg
from cellarman.core.options import Options
from cellarman.core.registry import FormulaRegistry
from cellarman.core.tab import Tab
from cellarman.services.build.protocol import (
    ERROR_PIPE_ENV,
    EXIT_FAILURE,
    EXIT_INTERRUPTED,
    ErrorRecord,
)
from cellarman.utils.logger import setup_logging
from cellarman.utils.shell import run_cmd

logger = logging.getLogger("cellarman.build")

SPEC_FLAGS = {"--devel": "devel", "--HEAD": "head"}
MODE_FLAGS = ("--interactive", "--build-bottle", "--verbose", "--debug")


class BuildRequest:
    """解析后的子进程参数"""

    def __init__(self, descriptor: str, flags: tuple[str, ...]) -> None:
        self.descriptor = Path(descriptor)
        self.spec = "stable"
        self.modes: set[str] = set()
        self.bottle_arch = ""
        option_flags: list[str] = []
        for flag in flags:
            if flag in SPEC_FLAGS:
                self.spec = SPEC_FLAGS[flag]
            elif flag in MODE_FLAGS:
                self.modes.add(flag[2:])
            elif flag.startswith("--bottle-arch="):
                self.bottle_arch = flag.split("=", 1)[1]
            elif flag.startswith("--"):
                option_flags.append(flag)
            else:
                raise ValidationError(f"无法识别的构建参数: {flag}")
        self.options = Options.from_flags(option_flags)

    @property
    def interactive(self) -> bool:
        return "interactive" in self.modes

    @property
    def build_bottle(self) -> bool:
        return "build-bottle" in self.modes


def _snapshot(root: Path, logs: Path) -> set[Path]:
    """<prefix>/{etc,var} 下的全部文件（构建日志目录除外）"""
    files: set[Path] = set()
    for top in ("etc", "var"):
        base = root / top
        if base.is_dir():
            files.update(
                p for p in base.rglob("*")
                if p.is_file() and not p.is_relative_to(logs)
            )
    return files


def _stage_bottle_etc_var(root: Path, logs: Path, keg: Path, before: set[Path]) -> None:
    """把构建期间新出现在 <prefix>/{etc,var} 的文件复制进 keg/.bottle"""
    for path in sorted(_snapshot(root, logs) - before):
        dest = keg / ".bottle" / path.relative_to(root)
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(path, dest)


def build(request: BuildRequest, config: Config) -> None:
    registry = FormulaRegistry(config)
    formula = registry.load_path(request.descriptor, spec=request.spec)
    logs = Path(config.logs_dir) / formula.name
    env = {
        **os.environ,
        "CELLARMAN_FORMULA_PREFIX": str(formula.prefix),
    }
    env.pop(ERROR_PIPE_ENV, None)

    logger.info("开始构建 %s %s (%s)", formula.name, formula.version, request.options or "无选项")
    formula.prefix.mkdir(parents=True, exist_ok=True)
    before = _snapshot(config.prefix_path, Path(config.logs_dir)) if request.build_bottle else set()

    with tempfile.TemporaryDirectory(prefix=f"cellarman-{formula.name}-") as tmp:
        work = Path(tmp) / formula.name
        if formula.source_dir is not None:
            shutil.copytree(formula.source_dir, work, symlinks=True)
        else:
            work.mkdir()

        if request.interactive:
            shell = os.environ.get("SHELL", "/bin/sh")
            logger.info("交互模式: 在 %s 中启动 %s，退出 shell 后继续", work, shell)
            subprocess.run([shell], cwd=str(work), env=env, check=False)
        else:
            for i, step in enumerate(formula.build_steps(request.options), start=1):
                tool = Path(step.split()[0]).name if step.split() else "step"
                run_cmd(
                    step, cwd=work, env=env, label=f"[{i}] {tool}",
                    log_file=logs / f"{i:02d}.{tool}.log",
                )

    if request.build_bottle:
        _stage_bottle_etc_var(config.prefix_path, Path(config.logs_dir), formula.prefix, before)

    if Keg(formula.prefix, config).empty_installation():
        # 由父进程报告空安装
        return
    Tab.create(
        formula,
        used=request.options & formula.options,
        unused=request.options - formula.options,
        built_as_bottle=request.build_bottle,
    ).write()


@click.command(context_settings={"ignore_unknown_options": True})
@click.argument("descriptor")
@click.argument("flags", nargs=-1, type=click.UNPROCESSED)
def main(descriptor: str, flags: tuple[str, ...]) -> None:
    """cellarman 构建子进程（内部使用）"""
    raw_fd = os.environ.get(ERROR_PIPE_ENV, "")
    if not raw_fd.isdigit():
        click.echo(f"{ERROR_PIPE_ENV} 未设置，构建子进程只能由 cellarman 启动", err=True)
        sys.exit(EXIT_FAILURE)

    verbose = "--verbose" in flags or "--debug" in flags
    setup_logging("DEBUG" if "--debug" in flags else ("INFO" if verbose else "WARNING"))

    with os.fdopen(int(raw_fd), "wb") as pipe:
        try:
            build(BuildRequest(descriptor, flags), Config.from_file())
        except KeyboardInterrupt as e:
            pipe.write(ErrorRecord.from_exception(e).dumps())
            pipe.flush()
            sys.exit(EXIT_INTERRUPTED)
        except Exception as e:
            logger.debug("构建失败", exc_info=True)
            pipe.write(ErrorRecord.from_exception(e).dumps())
            pipe.flush()
            sys.exit(EXIT_FAILURE)


if __name__ == "__main__":
    main()
