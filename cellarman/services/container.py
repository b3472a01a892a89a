"""服务容器：统一装配安装流程用到的协作者

同一容器内的实例共享状态：包描述缓存、插件注册表，以及一次顶层安装的
InstallContext（已尝试集合、锁登记表、失败标志）。递归的依赖安装
通过同一个容器拿到同一份上下文。

用法:
    container = ServiceContainer()
    installer = FormulaInstaller(container.registry.load("wget"), container=container)
    installer.run()

    # 显式注入配置（测试）
    container = ServiceContainer(config=Config(prefix=str(tmp_path)))
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cellarman.core.config import Config
    from cellarman.core.registry import FormulaRegistry, TapManager
    from cellarman.plugins import PluginRegistry
    from cellarman.services.build.runner import IsolatedBuildRunner
    from cellarman.services.installer.models import InstallContext

logger = logging.getLogger(__name__)


class ServiceContainer:
    """懒加载服务容器"""

    def __init__(self, config: Config | None = None) -> None:
        self._instances: dict[str, object] = {}
        if config is None:
            from cellarman.core.config import get_config
            config = get_config()
        self._config = config

    @property
    def config(self) -> Config:
        return self._config

    @property
    def registry(self) -> FormulaRegistry:
        if "registry" not in self._instances:
            from cellarman.core.registry import FormulaRegistry
            self._instances["registry"] = FormulaRegistry(self._config)
        return self._instances["registry"]  # type: ignore[return-value]

    @property
    def taps(self) -> TapManager:
        if "taps" not in self._instances:
            from cellarman.core.registry import TapManager
            self._instances["taps"] = TapManager(self.registry)
        return self._instances["taps"]  # type: ignore[return-value]

    @property
    def plugins(self) -> PluginRegistry:
        if "plugins" not in self._instances:
            from cellarman.plugins import PluginRegistry, load_plugins
            registry = PluginRegistry()
            load_plugins(self._config.plugins, registry)
            self._instances["plugins"] = registry
        return self._instances["plugins"]  # type: ignore[return-value]

    @property
    def build_runner(self) -> IsolatedBuildRunner:
        if "build_runner" not in self._instances:
            from cellarman.services.build.runner import IsolatedBuildRunner
            self._instances["build_runner"] = IsolatedBuildRunner(self._config)
        return self._instances["build_runner"]  # type: ignore[return-value]

    @property
    def context(self) -> InstallContext:
        if "context" not in self._instances:
            from cellarman.services.installer.models import InstallContext
            self._instances["context"] = InstallContext(self._config.locks_dir)
        return self._instances["context"]  # type: ignore[return-value]


# ---- 全局单例 ----

_global: ServiceContainer | None = None
_global_lock = threading.Lock()


def get_container() -> ServiceContainer:
    """获取全局 ServiceContainer 单例"""
    global _global  # noqa: PLW0603
    if _global is not None:
        return _global
    with _global_lock:
        if _global is None:
            _global = ServiceContainer()
        return _global


def reset_container() -> None:
    """重置全局容器（CLI 重新加载配置或测试时使用）"""
    global _global  # noqa: PLW0603
    with _global_lock:
        _global = None
