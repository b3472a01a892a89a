"""FileBottle 单元测试"""

from __future__ import annotations

import hashlib
import io
import tarfile
from pathlib import Path

import pytest

from cellarman.core.bottle import FileBottle
from cellarman.core.exceptions import (
    BottleFetchError,
    BottleStageError,
    ChecksumMismatchError,
)


def make(sandbox, name: str = "foo", **data) -> FileBottle:  # noqa: ANN001
    return FileBottle(
        name, "1.0", data,
        base_dir=sandbox.root,
        cellar=sandbox.config.cellar_path,
        cache_dir=Path(sandbox.config.cache_dir),
    )


class TestFileBottle:
    def test_local_fetch(self, sandbox) -> None:
        archive = sandbox.make_bottle("foo")
        assert make(sandbox, path=str(archive)).fetch() == archive

    def test_local_fetch_missing(self, sandbox) -> None:
        with pytest.raises(BottleFetchError, match="不存在"):
            make(sandbox, path="missing.tar.gz").fetch()

    def test_no_source(self, sandbox) -> None:
        with pytest.raises(BottleFetchError, match="path 或 url"):
            make(sandbox).fetch()

    def test_url_cache_hit(self, sandbox) -> None:
        bottle = make(sandbox, url="https://example.invalid/foo.tar.gz")
        cached = Path(sandbox.config.cache_dir) / bottle.filename
        cached.parent.mkdir(parents=True)
        cached.write_bytes(b"data")
        assert bottle.fetch() == cached

    def test_url_scheme_rejected(self, sandbox) -> None:
        with pytest.raises(BottleFetchError, match="下载失败"):
            make(sandbox, url="ftp://example.invalid/foo.tar.gz").fetch()

    def test_filename_rebuild(self, sandbox) -> None:
        assert make(sandbox).filename == "foo-1.0.bottle.tar.gz"
        assert make(sandbox, rebuild=2).filename == "foo-1.0.bottle.2.tar.gz"

    def test_checksum(self, sandbox) -> None:
        archive = sandbox.make_bottle("foo")
        digest = hashlib.sha256(archive.read_bytes()).hexdigest()
        make(sandbox, path=str(archive), sha256=digest).verify_download_integrity(archive)
        with pytest.raises(ChecksumMismatchError):
            make(sandbox, path=str(archive), sha256="0" * 64).verify_download_integrity(archive)

    def test_stage_extracts_keg(self, sandbox) -> None:
        archive = sandbox.make_bottle("foo", files={"bin/foo": "x", "etc/foo.conf": "y"})
        make(sandbox, path=str(archive)).stage(archive)
        keg = sandbox.config.cellar_path / "foo" / "1.0"
        assert (keg / "bin" / "foo").read_text(encoding="utf-8") == "x"
        assert (keg / "etc" / "foo.conf").exists()

    def test_stage_wrong_layout(self, sandbox) -> None:
        archive = sandbox.make_bottle("bar")
        with pytest.raises(BottleStageError, match="foo/1.0"):
            make(sandbox, path=str(archive)).stage(archive)

    def test_stage_corrupt_archive(self, sandbox) -> None:
        broken = sandbox.root / "broken.tar.gz"
        broken.write_bytes(b"not a tarball")
        with pytest.raises(BottleStageError, match="解压失败"):
            make(sandbox, path=str(broken)).stage(broken)

    def test_stage_rejects_member_outside_cellar(self, sandbox) -> None:
        archive = sandbox.root / "evil.tar.gz"
        with tarfile.open(archive, "w:gz") as tf:
            for name in ("foo/1.0/bin/foo", "../escaped"):
                info = tarfile.TarInfo(name)
                info.size = 1
                tf.addfile(info, io.BytesIO(b"x"))
        with pytest.raises(BottleStageError, match="解压失败"):
            make(sandbox, path=str(archive)).stage(archive)
        assert not (sandbox.config.cellar_path.parent / "escaped").exists()

    @pytest.mark.parametrize("cellar,expected", [
        (":any", True),
        (":any_skip_relocation", True),
        ("/somewhere/else", False),
    ])
    def test_compatible_cellar(self, sandbox, cellar: str, expected: bool) -> None:
        assert make(sandbox, cellar=cellar).compatible_cellar() is expected

    def test_compatible_with_same_cellar(self, sandbox) -> None:
        assert make(sandbox, cellar=sandbox.config.cellar).compatible_cellar()
