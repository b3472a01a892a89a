"""依赖替换的原子交换

安装某个依赖之前：
  - 若该依赖有已链接的 keg，先取消链接（记下，失败时重新链接）
  - 若当前版本的 keg 已在磁盘上，改名为同级的 <keg>.tmp（记下，失败时改回）
嵌套安装成功则删除 .tmp；任何失败（含中断）都在屏蔽中断的作用域里
把 .tmp 改回原路径（原路径仍空闲时）并重新链接，然后重新抛出。
"""

from __future__ import annotations

import logging
import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Iterator

from cellarman.core.keg import Keg
from cellarman.utils.signals import ignore_interrupts

if TYPE_CHECKING:
    from cellarman.core.config import Config
    from cellarman.core.protocols import Formula

logger = logging.getLogger(__name__)


def tmp_keg_path(keg: Path) -> Path:
    return keg.with_name(f"{keg.name}.tmp")


@contextmanager
def atomic_dependency_swap(formula: Formula, config: Config) -> Iterator[None]:
    linked_keg: Keg | None = None
    installed_keg: Path | None = None
    tmp_keg: Path | None = None
    had_opt = False

    try:
        record = formula.linked_keg
        if record.is_symlink() and record.resolve().is_dir():
            linked_keg = Keg(record.resolve(), config)
            logger.info("暂时取消链接 %s", linked_keg)
            linked_keg.unlink()

        if formula.installed:
            installed_keg = formula.prefix
            had_opt = Keg(installed_keg, config).opt_record.is_symlink()
            tmp_keg = tmp_keg_path(installed_keg)
            if tmp_keg.exists():
                shutil.rmtree(tmp_keg)
            installed_keg.rename(tmp_keg)
            logger.debug("已移开 %s -> %s", installed_keg, tmp_keg)

        yield
    except BaseException:
        with ignore_interrupts():
            if tmp_keg is not None and installed_keg is not None and not installed_keg.exists():
                tmp_keg.rename(installed_keg)
                restored = Keg(installed_keg, config)
                if had_opt and not restored.opt_record.is_symlink():
                    restored.optlink()
                logger.info("已恢复 %s", installed_keg)
            if linked_keg is not None and not linked_keg.linked():
                linked_keg.link()
                logger.info("已重新链接 %s", linked_keg)
        raise
    else:
        with ignore_interrupts():
            if tmp_keg is not None and tmp_keg.is_dir():
                shutil.rmtree(tmp_keg)
