"""Keg 链接 / 取消链接单元测试"""

from __future__ import annotations

from pathlib import Path

import pytest

from cellarman.core.config import Config
from cellarman.core.exceptions import ConflictError
from cellarman.core.keg import (
    CELLAR_PLACEHOLDER,
    PREFIX_PLACEHOLDER,
    Keg,
    LinkMode,
    format_size,
)


@pytest.fixture
def config(tmp_path: Path) -> Config:
    return Config(prefix=str(tmp_path / "prefix"))


def make_keg(config: Config, name: str = "foo", version: str = "1.0",
             files: tuple[str, ...] = ("bin/foo", "lib/libfoo.a", "share/foo/doc.txt")) -> Keg:
    path = config.cellar_path / name / version
    for rel in files:
        p = path / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(rel, encoding="utf-8")
    return Keg(path, config)


class TestKegLink:
    def test_link_creates_symlinks_and_record(self, config: Config) -> None:
        keg = make_keg(config)
        created = keg.link()
        root = config.prefix_path
        assert (root / "bin" / "foo").is_symlink()
        assert (root / "bin" / "foo").resolve() == (keg.path / "bin" / "foo").resolve()
        assert (root / "share" / "foo").is_dir()
        assert not (root / "share" / "foo").is_symlink()
        assert len(created) == 3
        assert keg.linked()

    def test_link_is_idempotent(self, config: Config) -> None:
        keg = make_keg(config)
        keg.link()
        assert keg.link() == []

    def test_conflict_rolls_back(self, config: Config) -> None:
        keg = make_keg(config)
        occupied = config.prefix_path / "lib" / "libfoo.a"
        occupied.parent.mkdir(parents=True)
        occupied.write_text("other", encoding="utf-8")

        with pytest.raises(ConflictError) as exc:
            keg.link()
        assert exc.value.dst == str(occupied)
        assert not (config.prefix_path / "bin" / "foo").exists()
        assert not keg.linked()
        assert occupied.read_text(encoding="utf-8") == "other"

    def test_dry_run_overwrite_lists_only_conflicts(self, config: Config) -> None:
        keg = make_keg(config)
        occupied = config.prefix_path / "bin" / "foo"
        occupied.parent.mkdir(parents=True)
        occupied.write_text("other", encoding="utf-8")

        conflicts = keg.link(LinkMode(dry_run=True, overwrite=True))
        assert conflicts == [occupied]
        assert not (config.prefix_path / "lib").exists()

    def test_dry_run_lists_all(self, config: Config) -> None:
        keg = make_keg(config)
        planned = keg.link(LinkMode(dry_run=True))
        assert config.prefix_path / "bin" / "foo" in planned
        assert not keg.linked()

    def test_overwrite_replaces(self, config: Config) -> None:
        keg = make_keg(config)
        occupied = config.prefix_path / "bin" / "foo"
        occupied.parent.mkdir(parents=True)
        occupied.write_text("other", encoding="utf-8")
        keg.link(LinkMode(overwrite=True))
        assert occupied.is_symlink()

    def test_unlink_removes_links_and_empty_dirs(self, config: Config) -> None:
        keg = make_keg(config)
        keg.link()
        removed = keg.unlink()
        assert removed == 3
        assert not (config.prefix_path / "bin").exists()
        assert not (config.prefix_path / "share" / "foo").exists()
        assert not keg.linked_keg_record.is_symlink()

    def test_unlink_keeps_foreign_files(self, config: Config) -> None:
        keg = make_keg(config)
        keg.link()
        foreign = config.prefix_path / "bin" / "other"
        foreign.write_text("x", encoding="utf-8")
        keg.unlink()
        assert foreign.exists()


class TestKegMisc:
    def test_optlink(self, config: Config) -> None:
        keg = make_keg(config)
        keg.optlink()
        assert keg.opt_record.resolve() == keg.path.resolve()
        keg.remove_opt_record()
        assert not keg.opt_record.is_symlink()

    def test_uninstall_drops_opt_record(self, config: Config) -> None:
        keg = make_keg(config)
        keg.optlink()
        keg.uninstall()
        assert not keg.path.exists()
        assert not keg.rack.exists()
        assert not keg.opt_record.is_symlink()

    def test_empty_installation(self, config: Config) -> None:
        keg = make_keg(config, files=("INSTALL_RECEIPT.json",))
        assert keg.empty_installation()
        assert Keg(config.cellar_path / "missing" / "1.0", config).empty_installation()
        assert not make_keg(config, name="bar").empty_installation()

    def test_relocate_placeholders(self, config: Config) -> None:
        keg = make_keg(config, files=())
        script = keg.path / "bin" / "tool"
        script.parent.mkdir(parents=True)
        script.write_text(f"#!/bin/sh\nexec {PREFIX_PLACEHOLDER}/libexec {CELLAR_PLACEHOLDER}\n",
                          encoding="utf-8")
        script.chmod(0o755)
        binary = keg.path / "lib" / "blob.bin"
        binary.parent.mkdir(parents=True)
        binary.write_bytes(b"\0" + PREFIX_PLACEHOLDER.encode())

        assert keg.relocate_placeholders() == 1
        text = script.read_text(encoding="utf-8")
        assert f"{config.prefix}/libexec {config.cellar}" in text
        assert script.stat().st_mode & 0o111
        assert binary.read_bytes() == b"\0" + PREFIX_PLACEHOLDER.encode()

    def test_disk_usage(self, config: Config) -> None:
        keg = make_keg(config, files=("bin/foo",))
        assert keg.disk_usage() == (1, len("bin/foo"))

    def test_uninstall_removes_empty_rack(self, config: Config) -> None:
        keg = make_keg(config)
        keg.uninstall()
        assert not keg.path.exists()
        assert not keg.rack.exists()

    def test_uninstall_keeps_other_versions(self, config: Config) -> None:
        old = make_keg(config, version="0.9")
        keg = make_keg(config)
        keg.uninstall()
        assert old.path.is_dir()


class TestFormatSize:
    @pytest.mark.parametrize("size,expected", [
        (0, "0B"),
        (512, "512B"),
        (2048, "2.0KB"),
        (5 * 1024 * 1024, "5.0MB"),
    ])
    def test_format(self, size: int, expected: str) -> None:
        assert format_size(size) == expected
