"""keg 链接步骤

失败都不回滚 keg：包保持「已安装但未链接」，记录警告并设置失败标志。
  - keg_only: 只建 opt 链接，失败只报告
  - 链接冲突: 以 dry_run + overwrite 重跑一遍，列出全部冲突路径
  - 其他 LinkError: 提示手动执行 cellarman link
  - 意外异常: 撤销已建链接、设置失败标志后重新抛出
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cellarman.core.exceptions import ConflictError, LinkError
from cellarman.core.keg import Keg, LinkMode
from cellarman.utils.signals import ignore_interrupts

if TYPE_CHECKING:
    from cellarman.core.protocols import Formula
    from cellarman.services.installer.models import InstallContext, InstallReport

logger = logging.getLogger(__name__)


class KegLinker:
    def __init__(self, context: InstallContext, report: InstallReport, *, debug: bool = False) -> None:
        self.context = context
        self.report = report
        self.debug = debug

    def _fail(self, message: str) -> None:
        logger.error(message)
        self.report.warn(message)
        self.context.mark_failed()

    def link(self, formula: Formula, keg: Keg) -> bool:
        """返回是否完成了链接"""
        if formula.keg_only:
            try:
                keg.optlink()
            except OSError as e:
                self._fail(
                    f"无法创建 {formula.opt_prefix}: {e}；依赖 {formula.name} 的包可能无法构建"
                )
                return False
            return True

        if keg.linked_keg_record.is_symlink():
            logger.warning("%s 已被标记为已链接，清除旧记录后继续", formula.name)
            keg.remove_linked_keg_record()

        root = keg.config.prefix
        try:
            keg.link()
            keg.optlink()
        except ConflictError as e:
            conflicts = keg.link(LinkMode(dry_run=True, overwrite=True))
            self.report.conflicts.extend(conflicts)
            lines = [
                f"链接步骤未完成: {formula.name} 已构建，但没有链接到 {root}",
                str(e),
                "可能冲突的文件:",
                *(f"  {p}" for p in conflicts),
            ]
            self._fail("\n".join(lines))
            return False
        except LinkError as e:
            self._fail(
                f"链接步骤未完成: {formula.name} 已构建，但没有链接到 {root}\n{e}\n"
                f"可以重试: cellarman link {formula.name}"
            )
            return False
        except Exception as e:
            logger.error("链接 %s 时发生意外错误: %s", formula.name, e, exc_info=self.debug)
            self.report.warn(f"链接 {formula.name} 时发生意外错误: {e}")
            with ignore_interrupts():
                keg.unlink()
            self.context.mark_failed()
            raise
        return True
