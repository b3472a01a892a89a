"""包描述注册表

职责:
- 按名称定位并加载 YAML 包描述（core formula 目录 + 已安装的 tap）
- 同一次运行内按 (名称, 版本规格) 缓存，保证依赖图中同名包是同一个对象
- tap 安装（git clone）
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING

from cellarman.core.exceptions import (
    ExecutionError,
    FormulaUnavailableError,
    TapFormulaUnavailableError,
    ValidationError,
)
from cellarman.core.formula import YamlFormula
from cellarman.utils.shell import run_cmd
from cellarman.utils.yaml_io import load_yaml

if TYPE_CHECKING:
    from cellarman.core.config import Config

logger = logging.getLogger(__name__)

_TAP_NAME_RE = re.compile(r"^([\w-]+)/([\w-]+)/([\w+.@-]+)$")
_SAFE_NAME_RE = re.compile(r"^[\w+.@-]+$")


def split_tap_name(name: str) -> tuple[str, str, str] | None:
    """user/repo/name -> (user, repo, name)；非 tap 限定名返回 None"""
    m = _TAP_NAME_RE.match(name)
    return (m.group(1), m.group(2), m.group(3)) if m else None


class FormulaRegistry:
    """包描述注册表"""

    def __init__(self, config: Config) -> None:
        self.config = config
        self._cache: dict[tuple[str, str], YamlFormula] = {}

    @property
    def formula_dir(self) -> Path:
        return Path(self.config.formula_dir)

    @property
    def taps_dir(self) -> Path:
        return Path(self.config.taps_dir)

    def tap_dir(self, user: str, repo: str) -> Path:
        return self.taps_dir / user / repo

    def tap_installed(self, user: str, repo: str) -> bool:
        return self.tap_dir(user, repo).is_dir()

    def find(self, name: str) -> Path:
        """定位描述文件，找不到抛 FormulaUnavailableError"""
        tap = split_tap_name(name)
        if tap is not None:
            user, repo, short = tap
            tap_dir = self.tap_dir(user, repo)
            for candidate in (tap_dir / "Formula" / f"{short}.yml", tap_dir / f"{short}.yml"):
                if candidate.is_file():
                    return candidate
            raise TapFormulaUnavailableError(user, repo, short)

        if not _SAFE_NAME_RE.match(name):
            raise ValidationError(f"包名包含非法字符: {name}")
        candidate = self.formula_dir / f"{name}.yml"
        if candidate.is_file():
            return candidate
        raise FormulaUnavailableError(name)

    def load(self, name: str, spec: str = "stable") -> YamlFormula:
        """加载包描述（带缓存）"""
        key = (name, spec)
        if key not in self._cache:
            self._cache[key] = self.load_path(self.find(name), spec=spec)
        return self._cache[key]

    def load_path(self, path: Path, spec: str = "stable") -> YamlFormula:
        data = load_yaml(path)
        if not data:
            raise ValidationError(f"包描述为空: {path}")
        formula = YamlFormula(path, data, config=self.config, registry=self, spec=spec)
        logger.debug("已加载包描述 %s (%s)", formula.name, path)
        return formula

    def all_names(self) -> list[str]:
        if not self.formula_dir.is_dir():
            return []
        return sorted(p.stem for p in self.formula_dir.glob("*.yml"))

    def clear_cache(self) -> None:
        """丢弃缓存（tap 安装后重新解析时使用）"""
        self._cache.clear()


class TapManager:
    """第三方包仓库（tap）管理"""

    def __init__(self, registry: FormulaRegistry) -> None:
        self.registry = registry

    def install_tap(self, user: str, repo: str) -> bool:
        """clone tap 仓库；已安装或 clone 失败返回 False"""
        if self.registry.tap_installed(user, repo):
            return False
        url = self.registry.config.tap_url_template.format(user=user, repo=repo)
        dest = self.registry.tap_dir(user, repo)
        dest.parent.mkdir(parents=True, exist_ok=True)
        logger.info("安装 tap %s/%s: %s", user, repo, url)
        try:
            run_cmd(["git", "clone", "--depth", "1", url, str(dest)], label="tap clone")
        except ExecutionError as e:
            logger.error("tap clone 失败 %s/%s: %s", user, repo, e)
            return False
        self.registry.clear_cache()
        return True
