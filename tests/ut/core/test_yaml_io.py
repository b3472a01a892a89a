"""描述文件读写测试"""

from pathlib import Path

import pytest

from cellarman.core.exceptions import ValidationError
from cellarman.utils.yaml_io import atomic_write, load_yaml


class TestLoadYaml:
    def test_missing_and_empty(self, tmp_path: Path) -> None:
        assert load_yaml(tmp_path / "missing.yml") == {}
        empty = tmp_path / "empty.yml"
        empty.write_text("", encoding="utf-8")
        assert load_yaml(empty) == {}

    def test_mapping(self, tmp_path: Path) -> None:
        p = tmp_path / "foo.yml"
        p.write_text("name: foo\nversion: '1.0'\n", encoding="utf-8")
        assert load_yaml(p) == {"name": "foo", "version": "1.0"}

    def test_syntax_error(self, tmp_path: Path) -> None:
        p = tmp_path / "bad.yml"
        p.write_text("name: [foo\n", encoding="utf-8")
        with pytest.raises(ValidationError, match="不是合法的 YAML"):
            load_yaml(p)

    def test_top_level_list(self, tmp_path: Path) -> None:
        p = tmp_path / "list.yml"
        p.write_text("- foo\n", encoding="utf-8")
        with pytest.raises(ValidationError, match="顶层应为映射"):
            load_yaml(p)


class TestAtomicWrite:
    def test_write_with_mode(self, tmp_path: Path) -> None:
        target = tmp_path / "sub" / "foo.plist"
        atomic_write(target, "<plist/>", mode=0o644)
        assert target.read_text(encoding="utf-8") == "<plist/>"
        assert target.stat().st_mode & 0o777 == 0o644
        assert [p.name for p in target.parent.iterdir()] == ["foo.plist"]

    def test_replaces_existing(self, tmp_path: Path) -> None:
        target = tmp_path / "receipt.json"
        target.write_text("old", encoding="utf-8")
        atomic_write(target, "new")
        assert target.read_text(encoding="utf-8") == "new"
