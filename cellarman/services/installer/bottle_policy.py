"""bottle 还是源码：倒瓶判定

pour_bottle() 判定顺序:
  1. 插件 bottle 钩子接管 -> 倒瓶
  2. 本次运行倒瓶已失败过 -> 源码
  3. --force-bottle 且有 bottle -> 倒瓶
  4. --build-from-source / --build-bottle / --interactive -> 源码
  5. 显式请求了任何选项 -> 源码（bottle 只对应一组固定选项）
  6. 配置 bottle_overrides 中指定了该包 -> 按配置
  7. 描述文件指定了本地 bottle -> 倒瓶
  8. 有 bottle、包自身允许、cellar 布局兼容 -> 倒瓶；布局不兼容只告警
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cellarman.core.config import Config
    from cellarman.core.options import Options
    from cellarman.core.protocols import Formula
    from cellarman.plugins import PluginRegistry
    from cellarman.services.installer.models import InstallerMode

logger = logging.getLogger(__name__)


class BottlePolicy:
    def __init__(self, config: Config, plugins: PluginRegistry) -> None:
        self.config = config
        self.plugins = plugins

    def pour_bottle(
        self, formula: Formula, mode: InstallerMode, options: Options, *,
        pour_failed: bool = False, warn: bool = False,
    ) -> bool:
        if self.plugins.formula_has_bottle(formula):
            return True
        if pour_failed:
            return False

        bottle = formula.bottle
        if mode.force_bottle and bottle is not None:
            return True
        if mode.build_from_source or mode.build_bottle or mode.interactive:
            return False
        if options:
            return False

        override = self.config.bottle_overrides.get(formula.name)
        if override is not None:
            return bool(override)
        if formula.local_bottle_path is not None:
            return True

        if bottle is None or not formula.pour_bottle_allowed():
            return False
        if not bottle.compatible_cellar():
            if warn:
                logger.warning(
                    "%s 的 bottle 需要 cellar %s，当前为 %s，改为源码构建",
                    formula.name, bottle.cellar, self.config.cellar,
                )
            return False
        return True

    def install_bottle_for_dependency(
        self, dep: Formula, *, build_from_source: bool, dependent_used_options: Options,
    ) -> bool:
        """依赖能否以 bottle 形式安装（依赖方用了自定义选项时不行）"""
        if build_from_source:
            return False
        if dep.bottle is None or not dep.pour_bottle_allowed():
            return False
        if dependent_used_options:
            return False
        return dep.bottle.compatible_cellar()
