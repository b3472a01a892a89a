"""Keg：cellar 中某个包某个版本的安装目录

    <cellar>/<name>/<version>/{bin,lib,share,...}

链接（link）把 keg 中可链接目录下的文件逐个软链到共享前缀
<prefix>/{bin,lib,share,...}，目录本身在前缀下建为真实目录；
opt 链接 <prefix>/opt/<name> 始终指向当前 keg（keg_only 包也有）；
已链接记录 <state_dir>/linked/<name> 指向被链接的 keg。
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Iterator

from cellarman.core.exceptions import ConflictError, LinkError

if TYPE_CHECKING:
    from cellarman.core.config import Config

logger = logging.getLogger(__name__)

LINK_DIRS = ("bin", "sbin", "include", "lib", "share", "etc", "var", "Frameworks")

PREFIX_PLACEHOLDER = "@@CELLARMAN_PREFIX@@"
CELLAR_PLACEHOLDER = "@@CELLARMAN_CELLAR@@"

# 不计入"安装内容"的元数据文件
METAFILES = frozenset({"INSTALL_RECEIPT.json", ".DS_Store"})


@dataclass
class LinkMode:
    """dry_run: 只列出路径不改动；overwrite: 覆盖已存在的冲突文件"""

    dry_run: bool = False
    overwrite: bool = False


class Keg:
    """一个已安装的 keg 目录"""

    def __init__(self, path: Path, config: Config) -> None:
        self.path = Path(path)
        self.config = config
        self.name = self.path.parent.name
        self.version = self.path.name

    @property
    def linked_keg_record(self) -> Path:
        return self.config.linked_dir / self.name

    @property
    def opt_record(self) -> Path:
        return self.config.opt_dir / self.name

    @property
    def rack(self) -> Path:
        return self.path.parent

    def exists(self) -> bool:
        return self.path.is_dir()

    def empty_installation(self) -> bool:
        """keg 中除安装回执等元数据外没有任何文件"""
        if not self.path.is_dir():
            return True
        return all(p.name in METAFILES for p in self.path.iterdir())

    def linked(self) -> bool:
        record = self.linked_keg_record
        return record.is_symlink() and record.resolve() == self.path.resolve()

    def __str__(self) -> str:
        return str(self.path)

    def __repr__(self) -> str:
        return f"<Keg {self.name} {self.version}>"

    # ------------------------------------------------------------------
    # 遍历
    # ------------------------------------------------------------------

    def _linkable_entries(self) -> Iterator[tuple[Path, Path, bool]]:
        """(keg 中的路径, 前缀中的目标路径, 是否为目录)，目录先于其内容"""
        root = self.config.prefix_path
        for top in LINK_DIRS:
            base = self.path / top
            if not base.is_dir() or base.is_symlink():
                continue
            for dirpath, dirnames, filenames in os.walk(base):
                current = Path(dirpath)
                rel = current.relative_to(self.path)
                yield current, root / rel, True
                dirnames.sort()
                for d in list(dirnames):
                    if (current / d).is_symlink():
                        # 目录软链按文件处理，不再深入
                        dirnames.remove(d)
                        yield current / d, root / rel / d, False
                for fname in sorted(filenames):
                    yield current / fname, root / rel / fname, False

    @staticmethod
    def _points_to(dst: Path, src: Path) -> bool:
        return dst.is_symlink() and os.path.realpath(dst) == os.path.realpath(src)

    # ------------------------------------------------------------------
    # 链接 / 取消链接
    # ------------------------------------------------------------------

    def link(self, mode: LinkMode | None = None) -> list[Path]:
        """链接到共享前缀

        dry_run 时返回会被创建的链接（overwrite=True 时改为返回会被覆盖的路径），
        否则返回新建的链接。遇到冲突时撤销本次已建的链接并抛 ConflictError。
        """
        mode = mode or LinkMode()
        planned: list[Path] = []
        created: list[Path] = []
        created_dirs: list[Path] = []

        for src, dst, is_dir in self._linkable_entries():
            if is_dir:
                if dst.is_symlink() or (dst.exists() and not dst.is_dir()):
                    if mode.dry_run:
                        planned.append(dst)
                        continue
                    if not mode.overwrite:
                        self._rollback(created, created_dirs)
                        raise ConflictError(
                            f"无法链接 {self.name}: {dst} 不是目录",
                            keg=str(self.path), src=str(src), dst=str(dst),
                        )
                    dst.unlink()
                if not mode.dry_run and not dst.exists():
                    dst.mkdir(parents=True)
                    created_dirs.append(dst)
                continue

            if self._points_to(dst, src):
                continue
            occupied = dst.exists() or dst.is_symlink()
            if mode.dry_run:
                if occupied or not mode.overwrite:
                    planned.append(dst)
                continue
            if occupied:
                if not mode.overwrite:
                    self._rollback(created, created_dirs)
                    raise ConflictError(
                        f"无法链接 {self.name}: 目标已存在 {dst}",
                        keg=str(self.path), src=str(src), dst=str(dst),
                    )
                if dst.is_dir() and not dst.is_symlink():
                    shutil.rmtree(dst)
                else:
                    dst.unlink()
            try:
                dst.symlink_to(src)
            except OSError as e:
                self._rollback(created, created_dirs)
                raise LinkError(
                    f"无法链接 {self.name}: {e}",
                    keg=str(self.path), src=str(src), dst=str(dst),
                ) from e
            created.append(dst)

        if mode.dry_run:
            return planned

        self._write_record(self.linked_keg_record)
        logger.info("已链接 %s: %d 个文件", self.name, len(created))
        return created

    @staticmethod
    def _rollback(created: list[Path], created_dirs: list[Path]) -> None:
        for link in reversed(created):
            link.unlink(missing_ok=True)
        for d in reversed(created_dirs):
            try:
                d.rmdir()
            except OSError:
                pass

    def unlink(self) -> int:
        """删除前缀中指向本 keg 的链接及因此变空的目录，返回删除的链接数"""
        removed = 0
        dirs: list[Path] = []
        for src, dst, is_dir in self._linkable_entries():
            if is_dir:
                dirs.append(dst)
            elif self._points_to(dst, src):
                dst.unlink()
                removed += 1
        root = self.config.prefix_path
        for d in sorted(dirs, key=lambda p: len(p.parts), reverse=True):
            if d == root or not d.is_dir() or d.is_symlink():
                continue
            try:
                d.rmdir()
            except OSError:
                pass
        if self.linked():
            self.linked_keg_record.unlink()
        logger.info("已取消链接 %s: %d 个文件", self.name, removed)
        return removed

    def optlink(self) -> None:
        """(重新)建立 <prefix>/opt/<name> -> keg"""
        self._write_record(self.opt_record)

    def remove_opt_record(self) -> None:
        if self._points_to(self.opt_record, self.path):
            self.opt_record.unlink()

    def remove_linked_keg_record(self) -> None:
        record = self.linked_keg_record
        if record.is_symlink():
            record.unlink()

    def _write_record(self, record: Path) -> None:
        record.parent.mkdir(parents=True, exist_ok=True)
        if record.is_symlink() or record.exists():
            record.unlink()
        record.symlink_to(self.path)

    # ------------------------------------------------------------------
    # 其他
    # ------------------------------------------------------------------

    def relocate_placeholders(self) -> int:
        """把文本文件中的前缀 / cellar 占位符替换为当前安装路径，返回改动文件数"""
        replacements = {
            PREFIX_PLACEHOLDER: self.config.prefix,
            CELLAR_PLACEHOLDER: self.config.cellar,
        }
        changed = 0
        for path in self._files():
            try:
                raw = path.read_bytes()
            except OSError:
                continue
            if b"\0" in raw or b"@@CELLARMAN_" not in raw:
                continue
            text = raw.decode("utf-8", errors="surrogateescape")
            for key, value in replacements.items():
                text = text.replace(key, value)
            mode = path.stat().st_mode
            path.write_bytes(text.encode("utf-8", errors="surrogateescape"))
            os.chmod(path, mode)
            changed += 1
        if changed:
            logger.info("%s: 已重定位 %d 个文件", self.name, changed)
        return changed

    def _files(self) -> Iterator[Path]:
        for dirpath, _dirnames, filenames in os.walk(self.path):
            for fname in filenames:
                p = Path(dirpath) / fname
                if not p.is_symlink():
                    yield p

    def disk_usage(self) -> tuple[int, int]:
        """(文件数, 字节数)"""
        count = size = 0
        for p in self._files():
            count += 1
            size += p.stat().st_size
        return count, size

    def uninstall(self) -> None:
        """删除 keg 目录及指向它的 opt 链接，rack 变空则一并删除"""
        self.remove_opt_record()
        shutil.rmtree(self.path, ignore_errors=True)
        try:
            self.rack.rmdir()
        except OSError:
            pass


def format_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{value:.0f}{unit}" if unit == "B" else f"{value:.1f}{unit}"
        value /= 1024
    return f"{size}B"
