"""集中配置管理

所有路径（前缀、cellar、锁目录、日志目录）和安装策略开关集中在 Config，
支持从 YAML 文件加载 + 环境变量覆盖 + 编程式覆盖。
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path

from cellarman.core.exceptions import ConfigError
from cellarman.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

# 构建子进程默认保留的环境变量白名单
DEFAULT_ENV_ALLOWLIST = (
    "PATH", "HOME", "USER", "LOGNAME", "SHELL", "TERM",
    "LANG", "LC_ALL", "TMPDIR",
)


@dataclass
class Config:
    """cellarman 全局配置"""

    # 目录
    prefix: str = "/opt/cellarman"
    cellar: str = ""            # 默认 <prefix>/Cellar
    formula_dir: str = ""       # 默认 <prefix>/Library/Formula
    taps_dir: str = ""          # 默认 <prefix>/Library/Taps
    cache_dir: str = ""         # 默认 <prefix>/var/cache/cellarman
    logs_dir: str = ""          # 默认 <prefix>/var/log/cellarman
    state_dir: str = ""         # 锁文件、已链接记录，默认 <prefix>/.cellarman

    # 构建
    env_allowlist: list[str] = field(default_factory=lambda: list(DEFAULT_ENV_ALLOWLIST))
    nice_build: bool = True
    bottle_archs: list[str] = field(
        default_factory=lambda: ["x86_64", "arm64", "core2", "penryn", "nehalem"],
    )

    # 策略
    developer: bool = False     # 严格模式：倒瓶失败直接致命
    bottle_overrides: dict[str, bool] = field(default_factory=dict)
    install_badge: str = "\U0001f37a"
    no_emoji: bool = False
    tap_url_template: str = "https://github.com/{user}/cellarman-{repo}.git"
    plugins: list[str] = field(default_factory=list)

    # 自定义扩展
    extra: dict = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.prefix:
            raise ConfigError("prefix 不能为空")
        base = Path(self.prefix)
        self.cellar = self.cellar or str(base / "Cellar")
        self.formula_dir = self.formula_dir or str(base / "Library" / "Formula")
        self.taps_dir = self.taps_dir or str(base / "Library" / "Taps")
        self.cache_dir = self.cache_dir or str(base / "var" / "cache" / "cellarman")
        self.logs_dir = self.logs_dir or str(base / "var" / "log" / "cellarman")
        self.state_dir = self.state_dir or str(base / ".cellarman")

    # ---- 派生路径 ----

    @property
    def prefix_path(self) -> Path:
        return Path(self.prefix)

    @property
    def cellar_path(self) -> Path:
        return Path(self.cellar)

    @property
    def locks_dir(self) -> Path:
        return Path(self.state_dir) / "locks"

    @property
    def linked_dir(self) -> Path:
        """已链接 keg 记录：<state_dir>/linked/<name> -> keg"""
        return Path(self.state_dir) / "linked"

    @property
    def opt_dir(self) -> Path:
        return self.prefix_path / "opt"

    @classmethod
    def from_file(cls, path: str = "") -> Config:
        """从 YAML 文件加载配置，文件不存在则使用默认值；随后应用环境变量覆盖"""
        data = load_yaml(path) if path else {}
        known = {f.name for f in cls.__dataclass_fields__.values()}
        matched = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}
        matched.update(_env_overrides())
        try:
            cfg = cls(**matched)
        except TypeError as e:
            raise ConfigError(f"配置文件无效: {path}: {e}") from e
        cfg.extra = extra
        return cfg

    def to_dict(self) -> dict:
        return asdict(self)

    def to_env(self) -> dict[str, str]:
        """导出目录布局为环境变量，供构建子进程重建同一份配置"""
        return {var: str(getattr(self, key)) for var, key in _ENV_PATHS.items()}


# 环境变量 -> 路径字段（构建子进程通过这些变量继承父进程的目录布局）
_ENV_PATHS = {
    "CELLARMAN_PREFIX": "prefix",
    "CELLARMAN_CELLAR": "cellar",
    "CELLARMAN_FORMULA_DIR": "formula_dir",
    "CELLARMAN_TAPS_DIR": "taps_dir",
    "CELLARMAN_CACHE_DIR": "cache_dir",
    "CELLARMAN_LOGS_DIR": "logs_dir",
    "CELLARMAN_STATE_DIR": "state_dir",
}


def _env_overrides() -> dict:
    result: dict = {}
    for var, key in _ENV_PATHS.items():
        if os.environ.get(var):
            result[key] = os.environ[var]
    if os.environ.get("CELLARMAN_DEVELOPER"):
        result["developer"] = os.environ["CELLARMAN_DEVELOPER"] not in ("0", "")
    return result


# 全局单例，首次 import 时不加载文件；由 CLI 入口显式初始化
_current: Config | None = None


def get_config() -> Config:
    """获取当前配置（未初始化则按环境变量构造默认值）"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = Config.from_file()
    return _current


def init_config(path: str = "") -> Config:
    """从文件初始化全局配置"""
    global _current  # noqa: PLW0603
    _current = Config.from_file(path)
    logger.info("配置已加载: %s (prefix=%s)", path or "<默认>", _current.prefix)
    return _current


def set_config(cfg: Config | None) -> None:
    """替换全局配置（测试或嵌入调用时使用），传 None 复位"""
    global _current  # noqa: PLW0603
    _current = cfg
