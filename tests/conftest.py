"""测试公共夹具：tmp_path 下的独立前缀与包描述目录"""

from __future__ import annotations

import io
import tarfile
from pathlib import Path
from typing import Any

import pytest
import yaml

import cellarman.core.config as cfgmod
from cellarman.core.config import Config
from cellarman.core.options import Options
from cellarman.core.tab import Tab
from cellarman.services.container import ServiceContainer, reset_container
from cellarman.utils.logger import reset_logging


class Sandbox:
    """一个隔离的 cellarman 安装前缀"""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.config = Config(prefix=str(root / "prefix"), nice_build=False)
        self.container = ServiceContainer(self.config)

    @property
    def formula_dir(self) -> Path:
        return Path(self.config.formula_dir)

    @property
    def registry(self):  # noqa: ANN201
        return self.container.registry

    def write_formula(self, name: str, **data: Any) -> Path:
        data.setdefault("version", "1.0")
        data.setdefault("build", [
            "mkdir -p {bin}",
            "touch {bin}/" + name,
        ])
        path = self.formula_dir / f"{name}.yml"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(yaml.safe_dump({"name": name, **data}, allow_unicode=True), encoding="utf-8")
        self.registry.clear_cache()
        return path

    def load(self, name: str, spec: str = "stable"):  # noqa: ANN201
        return self.registry.load(name, spec)

    def fake_install(self, name: str, used: list[str] | None = None,
                     files: tuple[str, ...] = ("bin/{name}",)) -> Path:
        """直接在 cellar 中放一个已安装的 keg（不经过安装流程）"""
        f = self.load(name)
        for rel in files:
            p = f.prefix / rel.format(name=name)
            p.parent.mkdir(parents=True, exist_ok=True)
            p.write_text(f"{name}\n", encoding="utf-8")
        Tab.create(f, Options(used or []), Options()).write()
        return f.prefix

    def make_bottle(self, name: str, version: str = "1.0",
                    files: dict[str, str] | None = None) -> Path:
        """生成 <name>-<version>.bottle.tar.gz，内部布局 <name>/<version>/..."""
        files = files or {f"bin/{name}": f"#!/bin/sh\necho {name}\n"}
        dest = self.root / "bottles" / f"{name}-{version}.bottle.tar.gz"
        dest.parent.mkdir(parents=True, exist_ok=True)
        with tarfile.open(dest, "w:gz") as tf:
            for rel, content in files.items():
                raw = content.encode("utf-8")
                info = tarfile.TarInfo(f"{name}/{version}/{rel}")
                info.size = len(raw)
                info.mode = 0o755
                tf.addfile(info, io.BytesIO(raw))
        return dest


@pytest.fixture
def sandbox(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    box = Sandbox(tmp_path)
    monkeypatch.setattr(cfgmod, "_current", box.config)
    reset_container()
    yield box
    reset_container()
    reset_logging()
