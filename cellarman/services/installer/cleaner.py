"""安装后清理 keg

- 删除 libtool 归档（*.la）
- bin / sbin 下的普通文件补上可执行权限
- 删除空目录（自底向上，keg 根目录保留）
"""

from __future__ import annotations

import logging
import os
import stat
from pathlib import Path

logger = logging.getLogger(__name__)

EXECUTABLE_DIRS = ("bin", "sbin")


class Cleaner:
    def __init__(self, keg: Path) -> None:
        self.keg = keg

    def clean(self) -> None:
        removed = self._remove_libtool_archives()
        self._fix_executables()
        pruned = self._prune_empty_dirs()
        logger.debug("清理 %s: 删除 %d 个 .la 文件，%d 个空目录", self.keg, removed, pruned)

    def _remove_libtool_archives(self) -> int:
        count = 0
        lib = self.keg / "lib"
        if not lib.is_dir():
            return 0
        for path in lib.rglob("*.la"):
            if path.is_file() and not path.is_symlink():
                path.unlink()
                count += 1
        return count

    def _fix_executables(self) -> None:
        for name in EXECUTABLE_DIRS:
            base = self.keg / name
            if not base.is_dir():
                continue
            for path in base.iterdir():
                if path.is_symlink() or not path.is_file():
                    continue
                mode = path.stat().st_mode
                path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

    def _prune_empty_dirs(self) -> int:
        count = 0
        for dirpath, dirnames, filenames in os.walk(self.keg, topdown=False):
            current = Path(dirpath)
            if current == self.keg or current.is_symlink():
                continue
            if not any(current.iterdir()):
                current.rmdir()
                count += 1
        return count
