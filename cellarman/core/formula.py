"""基于 YAML 描述文件的包（formula）实现

描述文件示例:

    name: wget
    version: "1.21"
    devel: {version: "1.22-rc1"}
    head: {}
    options:
      - {name: with-debug, description: 带调试符号构建}
    dependencies:
      - openssl
      - {name: pcre, tags: [optional]}
      - {name: pkg-config, tags: [build]}
    requirements:
      - {name: x11, which: xterm, tags: [recommended], default_formula: libx11}
    conflicts: [wget2]
    require_universal_deps: false
    bottle: {path: bottles/wget-1.21.bottle.tar.gz, sha256: "...", cellar: ":any"}
    build:
      - mkdir -p {bin}
      - cp wget {bin}/wget
      - {cmd: "touch {share}/debug", if_option: with-debug}
    post_install:
      - mkdir -p {var}/wget

构建步骤与安装钩子中的 {prefix} {bin} {lib} {share} {etc} {var}
{name} {version} {cellar} {opt_prefix} {root} 占位符按本次安装展开。
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

from cellarman.core.bottle import FileBottle
from cellarman.core.dependency import (
    Dependency,
    DependencyTag,
    Requirement,
    expand,
)
from cellarman.core.exceptions import ValidationError
from cellarman.core.options import Option, Options
from cellarman.utils.shell import run_cmd

if TYPE_CHECKING:
    from cellarman.core.config import Config
    from cellarman.core.registry import FormulaRegistry

logger = logging.getLogger(__name__)

SPECS = ("stable", "devel", "head")


def expand_placeholders(text: str, mapping: dict[str, str]) -> str:
    """只替换已知占位符，命令中其他花括号保持原样"""
    for key, value in mapping.items():
        text = text.replace("{" + key + "}", value)
    return text


class YamlFormula:
    """YAML 描述文件对应的包"""

    def __init__(
        self, path: Path, data: dict[str, Any], *,
        config: Config,
        registry: FormulaRegistry,
        spec: str = "stable",
    ) -> None:
        if spec not in SPECS:
            raise ValidationError(f"未知的版本规格: {spec}")
        self.path = path
        self.config = config
        self.name: str = str(data.get("name") or path.stem)
        self.active_spec = spec
        self._data = data
        self._registry = registry

        spec_data = self._spec_data(data, spec)
        if spec == "head":
            self.version = "HEAD"
        else:
            self.version = str(spec_data.get("version") or data.get("version") or "")
        if not self.version:
            raise ValidationError(f"{self.name}: 缺少 version", details=[str(path)])

        self.keg_only: bool = bool(data.get("keg_only", False))
        # 为 true 时依赖总以 universal 构建，不论根包是否请求
        self.require_universal_deps: bool = bool(data.get("require_universal_deps", False))
        self.conflicts: list[str] = list(data.get("conflicts") or [])
        self.plist: str | None = data.get("plist")
        self.caveats: str | None = data.get("caveats")

        dep_items = list(data.get("dependencies") or [])
        req_items = list(data.get("requirements") or [])
        if spec != "stable":
            dep_items += spec_data.get("dependencies") or []
            req_items += spec_data.get("requirements") or []
        self._deps = [self._parse_dependency(d) for d in dep_items]
        self._requirements = [self._parse_requirement(r) for r in req_items]
        self._options = self._declared_options(data.get("options") or [])
        bottle_data = data.get("bottle") or (
            {"path": data["local_bottle"]} if data.get("local_bottle") else None
        )
        self._bottle = self._parse_bottle(bottle_data) if spec == "stable" else None

    # ------------------------------------------------------------------
    # 解析
    # ------------------------------------------------------------------

    def _spec_data(self, data: dict[str, Any], spec: str) -> dict[str, Any]:
        if spec == "stable":
            return data
        if spec not in data:
            raise ValidationError(f"{self.name} 没有定义 {spec} 版本")
        return data.get(spec) or {}

    def _parse_dependency(self, item: Any) -> Dependency:
        if isinstance(item, str):
            return Dependency(item, loader=self._registry.load)
        if not isinstance(item, dict) or not item.get("name"):
            raise ValidationError(f"{self.name}: 无效的依赖定义: {item!r}")
        return Dependency(
            item["name"],
            DependencyTag.parse(item.get("tags") or []),
            Options(item.get("options") or []),
            loader=self._registry.load,
        )

    def _parse_requirement(self, item: Any) -> Requirement:
        if not isinstance(item, dict) or not item.get("name"):
            raise ValidationError(f"{self.name}: 无效的前置条件定义: {item!r}")
        default_formula = item.get("default_formula")
        return Requirement(
            name=item["name"],
            tags=DependencyTag.parse(item.get("tags") or []),
            fatal=bool(item.get("fatal", True)),
            default_formula=default_formula,
            probe=self._requirement_probe(item, default_formula),
            message=item.get("message", ""),
            loader=self._registry.load,
        )

    def _requirement_probe(
        self, item: dict[str, Any], default_formula: str | None,
    ) -> Callable[[], bool]:
        checks: list[Callable[[], bool]] = []
        if item.get("which"):
            cmd = item["which"]
            checks.append(lambda: shutil.which(cmd) is not None)
        if item.get("env"):
            var = item["env"]
            checks.append(lambda: bool(os.environ.get(var)))
        if item.get("path"):
            target = Path(item["path"])
            checks.append(target.exists)
        if not checks:
            if not default_formula:
                raise ValidationError(
                    f"{self.name}: 前置条件 {item['name']} 需要 which / env / path 之一"
                )
            checks.append(lambda: self._registry.load(default_formula).installed)
        return lambda: all(check() for check in checks)

    def _declared_options(self, items: list[Any]) -> Options:
        declared: list[Option] = []
        for item in items:
            if isinstance(item, str):
                declared.append(Option(item))
            elif isinstance(item, dict) and item.get("name"):
                declared.append(Option(item["name"], item.get("description", "")))
            else:
                raise ValidationError(f"{self.name}: 无效的选项定义: {item!r}")
        for edge in [*self._deps, *self._requirements]:
            if edge.optional:
                declared.append(Option(f"with-{edge.option_name}", f"使用 {edge.name} 构建"))
            elif edge.recommended:
                declared.append(Option(f"without-{edge.option_name}", f"不使用 {edge.name} 构建"))
        return Options(declared)

    def _parse_bottle(self, data: dict[str, Any] | None) -> FileBottle | None:
        if not data:
            return None
        return FileBottle(
            self.name, self.version, data,
            base_dir=self.path.parent,
            cellar=self.config.cellar_path,
            cache_dir=Path(self.config.cache_dir),
        )

    # ------------------------------------------------------------------
    # 描述信息
    # ------------------------------------------------------------------

    @property
    def deps(self) -> list[Dependency]:
        return list(self._deps)

    @property
    def requirements(self) -> list[Requirement]:
        return list(self._requirements)

    @property
    def options(self) -> Options:
        return self._options

    def option_defined(self, name: str) -> bool:
        return name in self._options

    @property
    def bottle(self) -> FileBottle | None:
        return self._bottle

    @property
    def local_bottle_path(self) -> Path | None:
        """描述文件 local_bottle 字段指定的本地 bottle，存在时总是倒瓶"""
        raw = self._data.get("local_bottle")
        if not raw or self.active_spec != "stable":
            return None
        return self.path.parent / raw

    def pour_bottle_allowed(self) -> bool:
        return bool(self._data.get("pour_bottle", True))

    @property
    def source_dir(self) -> Path | None:
        raw = self._data.get("source")
        return (self.path.parent / raw) if raw else None

    # ------------------------------------------------------------------
    # 路径与安装状态
    # ------------------------------------------------------------------

    @property
    def rack(self) -> Path:
        return self.config.cellar_path / self.name

    @property
    def prefix(self) -> Path:
        return self.rack / self.version

    @property
    def bottle_prefix(self) -> Path:
        return self.prefix / ".bottle"

    @property
    def opt_prefix(self) -> Path:
        return self.config.opt_dir / self.name

    @property
    def linked_keg(self) -> Path:
        return self.config.linked_dir / self.name

    @property
    def plist_name(self) -> str:
        return f"cellarman.{self.name}"

    @property
    def installed(self) -> bool:
        return self.prefix.is_dir() and any(self.prefix.iterdir())

    def installed_version(self) -> str | None:
        if self.installed:
            return self.version
        if not self.rack.is_dir():
            return None
        versions = sorted(p.name for p in self.rack.iterdir() if p.is_dir() and any(p.iterdir()))
        return versions[-1] if versions else None

    def recursive_dependencies(self) -> list[Dependency]:
        return expand(self)

    def placeholders(self) -> dict[str, str]:
        prefix = self.prefix
        return {
            "prefix": str(prefix),
            "bin": str(prefix / "bin"),
            "sbin": str(prefix / "sbin"),
            "lib": str(prefix / "lib"),
            "include": str(prefix / "include"),
            "share": str(prefix / "share"),
            "etc": str(prefix / "etc"),
            "var": str(prefix / "var"),
            "name": self.name,
            "version": self.version,
            "cellar": self.config.cellar,
            "opt_prefix": str(self.opt_prefix),
            "root": self.config.prefix,
        }

    def build_steps(self, options: Options) -> list[str]:
        """按生效选项筛选构建步骤并展开占位符"""
        return self._steps("build", options)

    def _steps(self, key: str, options: Options) -> list[str]:
        mapping = self.placeholders()
        steps: list[str] = []
        for item in self._data.get(key) or []:
            if isinstance(item, str):
                steps.append(expand_placeholders(item, mapping))
                continue
            if not isinstance(item, dict) or not item.get("cmd"):
                raise ValidationError(f"{self.name}: 无效的 {key} 步骤: {item!r}")
            if item.get("if_option") and item["if_option"] not in options:
                continue
            if item.get("unless_option") and item["unless_option"] in options:
                continue
            steps.append(expand_placeholders(item["cmd"], mapping))
        return steps

    def post_install(self) -> None:
        """执行 post_install 步骤，失败抛 ExecutionError"""
        for i, cmd in enumerate(self._steps("post_install", Options()), start=1):
            run_cmd(cmd, cwd=self.prefix, label=f"post_install#{i}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "spec": self.active_spec,
            "keg_only": self.keg_only,
            "require_universal_deps": self.require_universal_deps,
            "options": [{"name": o.name, "description": o.description} for o in self._options],
            "dependencies": [
                {"name": d.name, "tags": sorted(t.value for t in d.tags)} for d in self._deps
            ],
            "requirements": [r.name for r in self._requirements],
            "conflicts": self.conflicts,
            "bottle": self._bottle is not None,
            "installed": self.installed,
        }

    def __repr__(self) -> str:
        return f"<YamlFormula {self.name} {self.version} ({self.active_spec})>"

    def __str__(self) -> str:
        return self.name
