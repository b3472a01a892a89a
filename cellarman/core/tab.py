"""安装回执（Tab）

每个 keg 根目录下的 INSTALL_RECEIPT.json，记录本次安装使用的选项、
是否来自 bottle 等信息。重装时读取上次的 used_options 作为默认选项。
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from cellarman.core.options import Options
from cellarman.utils.yaml_io import atomic_write

if TYPE_CHECKING:
    from cellarman.core.protocols import Formula

logger = logging.getLogger(__name__)

RECEIPT_NAME = "INSTALL_RECEIPT.json"


@dataclass
class Tab:
    used_options: list[str] = field(default_factory=list)
    unused_options: list[str] = field(default_factory=list)
    poured_from_bottle: bool = False
    built_as_bottle: bool = False
    installed_as_dependency: bool = False
    installed_on_request: bool = False
    spec: str = "stable"
    time: float | None = None
    path: Path | None = field(default=None, compare=False, repr=False)

    @classmethod
    def empty(cls) -> Tab:
        return cls()

    @classmethod
    def from_file(cls, path: Path) -> Tab:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("安装回执不可读 %s: %s", path, e)
            return cls(path=path)
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__ and k != "path"}
        tab = cls(**known)
        tab.path = path
        return tab

    @classmethod
    def for_keg(cls, keg: Path) -> Tab:
        receipt = keg / RECEIPT_NAME
        if receipt.exists():
            return cls.from_file(receipt)
        return cls(path=receipt)

    @classmethod
    def for_formula(cls, formula: Formula) -> Tab:
        """优先读 opt 链接指向的 keg，其次当前版本 keg，都没有则返回空回执"""
        for keg in (formula.opt_prefix, formula.prefix):
            if (keg / RECEIPT_NAME).exists():
                return cls.from_file(keg / RECEIPT_NAME)
        return cls.empty()

    @classmethod
    def create(cls, formula: Formula, used: Options, unused: Options, *,
               built_as_bottle: bool = False) -> Tab:
        return cls(
            used_options=used.names,
            unused_options=unused.names,
            built_as_bottle=built_as_bottle,
            spec=formula.active_spec,
            time=time.time(),
            path=formula.prefix / RECEIPT_NAME,
        )

    @property
    def used(self) -> Options:
        return Options(self.used_options)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("path")
        return data

    def write(self) -> None:
        if self.path is None:
            raise ValueError("安装回执没有目标路径")
        atomic_write(self.path, json.dumps(self.to_dict(), indent=2) + "\n")
