"""插件系统 - 扩展 cellarman 安装流程

插件可以提供：
- bottle 钩子：接管某些包的 bottle 判定与倒瓶（如企业内部制品库）
- 安装前/后通知钩子

注册插件：创建一个包含 `register(registry)` 函数的模块，
并在配置文件 plugins 列表中写上模块名。
"""

from __future__ import annotations

import importlib
import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

EVENTS = ("pre_install", "post_install")


class PluginRegistry:
    """插件统一注册表"""

    def __init__(self) -> None:
        self._hooks: dict[str, list[Callable[..., Any]]] = {e: [] for e in EVENTS}
        self._has_bottle: list[Callable[[Any], bool]] = []
        self._pour_bottle: list[Callable[[Any], bool]] = []

    def add_hook(self, event: str, callback: Callable[..., Any]) -> None:
        if event not in self._hooks:
            raise ValueError(f"未知的钩子事件: {event}")
        self._hooks[event].append(callback)

    def fire(self, event: str, **kwargs: Any) -> None:
        """通知类钩子，出错只记录不影响安装"""
        for callback in self._hooks.get(event, []):
            try:
                callback(**kwargs)
            except Exception:
                logger.exception("插件钩子在事件 '%s' 上出错", event)

    # ---- bottle 钩子 ----

    def add_bottle_hook(
        self,
        has_bottle: Callable[[Any], bool],
        pour_bottle: Callable[[Any], bool],
    ) -> None:
        """has_bottle(formula) 为 True 时由 pour_bottle(formula) 负责倒瓶"""
        self._has_bottle.append(has_bottle)
        self._pour_bottle.append(pour_bottle)

    def formula_has_bottle(self, formula: Any) -> bool:
        return any(check(formula) for check in self._has_bottle)

    def pour_formula_bottle(self, formula: Any) -> bool:
        """由插件倒瓶；没有插件接管返回 False"""
        for check, pour in zip(self._has_bottle, self._pour_bottle):
            if check(formula):
                return bool(pour(formula))
        return False


def load_plugins(plugin_names: list[str], registry: PluginRegistry) -> None:
    """按模块名加载插件并注册"""
    for name in plugin_names:
        try:
            mod = importlib.import_module(name)
        except ImportError:
            logger.error("加载插件失败: %s", name)
            continue
        if hasattr(mod, "register"):
            mod.register(registry)
            logger.info("插件已加载: %s", name)
        else:
            logger.warning("插件 '%s' 没有 register() 函数，跳过。", name)
