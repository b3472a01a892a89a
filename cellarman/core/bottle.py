"""预编译包（bottle）

bottle 是可重定位的 tar.gz 归档，内部布局为 <name>/<version>/...，
解压到 cellar 后即为一个完整的 keg。

  - fetch: 本地路径直接使用；url 来源下载到缓存目录（已存在则命中缓存）
  - verify_download_integrity: sha256 校验
  - stage: 解压到 cellar
  - compatible_cellar: ":any" / ":any_skip_relocation" 或与当前 cellar 一致
"""

from __future__ import annotations

import logging
import tarfile
from pathlib import Path
from typing import Any

from cellarman.core.exceptions import (
    BottleFetchError,
    BottleStageError,
    ChecksumMismatchError,
    ValidationError,
)
from cellarman.utils.net import download, file_sha256

logger = logging.getLogger(__name__)

RELOCATABLE_CELLARS = (":any", ":any_skip_relocation")


class FileBottle:
    """描述文件中 bottle 段对应的实现"""

    def __init__(
        self, name: str, version: str, data: dict[str, Any], *,
        base_dir: Path, cellar: Path, cache_dir: Path,
    ) -> None:
        self.name = name
        self.version = version
        raw_path = data.get("path", "")
        self.path = (base_dir / raw_path) if raw_path else None
        self.url: str = data.get("url", "")
        self.sha256: str = data.get("sha256", "")
        self.cellar = str(data.get("cellar", ":any"))
        self.rebuild = int(data.get("rebuild", 0))
        self._target_cellar = cellar
        self._cache_dir = cache_dir

    @property
    def filename(self) -> str:
        suffix = f".{self.rebuild}" if self.rebuild else ""
        return f"{self.name}-{self.version}.bottle{suffix}.tar.gz"

    @property
    def skip_relocation(self) -> bool:
        return self.cellar == ":any_skip_relocation"

    def compatible_cellar(self) -> bool:
        if self.cellar in RELOCATABLE_CELLARS:
            return True
        return Path(self.cellar) == self._target_cellar

    def fetch(self) -> Path:
        """获取 bottle 归档，返回本地路径"""
        if self.path is not None:
            if not self.path.is_file():
                raise BottleFetchError(f"bottle 文件不存在: {self.path}")
            return self.path
        if not self.url:
            raise BottleFetchError(f"{self.name} 的 bottle 未定义 path 或 url")

        dest = self._cache_dir / self.filename
        if dest.exists():
            logger.info("  缓存命中: %s", dest)
            return dest

        try:
            return download(self.url, dest, label=f"bottle {self.name}")
        except (ValidationError, OSError) as e:
            raise BottleFetchError(f"下载失败: {self.url} - {e}") from e

    def verify_download_integrity(self, path: Path) -> None:
        if not self.sha256:
            logger.warning("%s 的 bottle 未提供 sha256，跳过校验", self.name)
            return
        actual = file_sha256(path)
        if actual != self.sha256:
            raise ChecksumMismatchError(str(path), self.sha256, actual)
        logger.info("  校验和通过: %s", path.name)

    def stage(self, path: Path) -> None:
        """解压到 cellar，归档内必须包含 <name>/<version>/"""
        self._target_cellar.mkdir(parents=True, exist_ok=True)
        expected = f"{self.name}/{self.version}"
        try:
            with tarfile.open(path) as tf:
                members = tf.getnames()
                if not any(m == expected or m.startswith(expected + "/") for m in members):
                    raise BottleStageError(f"bottle 归档中没有 {expected}/: {path}")
                tf.extractall(path=str(self._target_cellar), filter="data")  # noqa: S202
        except (OSError, tarfile.TarError) as e:
            raise BottleStageError(f"bottle 解压失败 {path}: {e}") from e
        logger.info("  已解压: %s -> %s", path.name, self._target_cellar / expected)
