"""YAML 包描述与注册表单元测试"""

from __future__ import annotations

from unittest.mock import patch

import pytest

from cellarman.core.exceptions import (
    ExecutionError,
    FormulaUnavailableError,
    TapFormulaUnavailableError,
    ValidationError,
)
from cellarman.core.options import Options
from cellarman.core.registry import TapManager, split_tap_name


class TestYamlFormula:
    def test_basic_fields(self, sandbox) -> None:
        sandbox.write_formula(
            "foo", version="2.1", keg_only=True, conflicts=["bar"],
            caveats="注意", plist="<plist/>",
        )
        f = sandbox.load("foo")
        assert f.version == "2.1"
        assert f.keg_only
        assert f.conflicts == ["bar"]
        assert f.prefix == sandbox.config.cellar_path / "foo" / "2.1"
        assert f.opt_prefix == sandbox.config.prefix_path / "opt" / "foo"
        assert f.plist_name == "cellarman.foo"
        assert not f.installed
        assert f.installed_version() is None

    def test_missing_version(self, sandbox) -> None:
        sandbox.write_formula("foo", version="")
        with pytest.raises(ValidationError, match="version"):
            sandbox.load("foo")

    def test_dependencies_and_implicit_options(self, sandbox) -> None:
        sandbox.write_formula("foo", dependencies=[
            "c",
            {"name": "b", "tags": ["optional"]},
            {"name": "r", "tags": ["recommended"], "options": ["universal"]},
            {"name": "t", "tags": ["build"]},
        ], options=[{"name": "universal", "description": "通用二进制"}])
        f = sandbox.load("foo")
        assert [d.name for d in f.deps] == ["c", "b", "r", "t"]
        assert f.deps[1].optional
        assert f.deps[2].options == Options(["universal"])
        assert f.deps[3].build
        assert f.options.names == ["universal", "with-b", "without-r"]

    def test_invalid_dependency(self, sandbox) -> None:
        sandbox.write_formula("foo", dependencies=[{"tags": ["build"]}])
        with pytest.raises(ValidationError, match="无效的依赖定义"):
            sandbox.load("foo")

    def test_requirement_probes(self, sandbox, monkeypatch) -> None:
        monkeypatch.setenv("CELLARMAN_TEST_FLAG", "1")
        sandbox.write_formula("foo", requirements=[
            {"name": "flag", "env": "CELLARMAN_TEST_FLAG"},
            {"name": "nothere", "path": str(sandbox.root / "missing"), "fatal": False},
            {"name": "sh", "which": "sh"},
        ])
        reqs = sandbox.load("foo").requirements
        assert [r.satisfied for r in reqs] == [True, False, True]
        assert not reqs[1].fatal

    def test_requirement_without_probe_uses_default_formula(self, sandbox) -> None:
        sandbox.write_formula("xtool")
        sandbox.write_formula("foo", requirements=[{"name": "x", "default_formula": "xtool"}])
        req = sandbox.load("foo").requirements[0]
        assert not req.satisfied
        sandbox.fake_install("xtool")
        assert req.satisfied

    def test_requirement_needs_probe(self, sandbox) -> None:
        sandbox.write_formula("foo", requirements=[{"name": "x"}])
        with pytest.raises(ValidationError, match="which / env / path"):
            sandbox.load("foo")

    def test_specs(self, sandbox) -> None:
        sandbox.write_formula(
            "foo", version="1.0",
            devel={"version": "1.1-rc1", "dependencies": ["extra"]},
            head={},
            bottle={"path": "foo.tar.gz"},
        )
        assert sandbox.load("foo").bottle is not None
        devel = sandbox.load("foo", "devel")
        assert devel.version == "1.1-rc1"
        assert [d.name for d in devel.deps] == ["extra"]
        assert devel.bottle is None
        assert sandbox.load("foo", "head").version == "HEAD"

    def test_undefined_spec(self, sandbox) -> None:
        sandbox.write_formula("foo")
        with pytest.raises(ValidationError, match="devel"):
            sandbox.load("foo", "devel")

    def test_build_steps_placeholders_and_gates(self, sandbox) -> None:
        sandbox.write_formula("foo", build=[
            "mkdir -p {bin}",
            {"cmd": "echo with-x {prefix}", "if_option": "with-x"},
            {"cmd": "echo plain", "unless_option": "with-x"},
        ])
        f = sandbox.load("foo")
        assert f.build_steps(Options()) == [f"mkdir -p {f.prefix}/bin", "echo plain"]
        assert f.build_steps(Options(["with-x"])) == [
            f"mkdir -p {f.prefix}/bin", f"echo with-x {f.prefix}",
        ]

    def test_post_install(self, sandbox) -> None:
        sandbox.write_formula("foo", post_install=["touch {prefix}/marker"])
        sandbox.fake_install("foo")
        f = sandbox.load("foo")
        f.post_install()
        assert (f.prefix / "marker").exists()

    def test_installed_version_of_other_keg(self, sandbox) -> None:
        sandbox.write_formula("foo", version="2.0")
        old = sandbox.config.cellar_path / "foo" / "1.0"
        old.mkdir(parents=True)
        (old / "file").write_text("x", encoding="utf-8")
        f = sandbox.load("foo")
        assert not f.installed
        assert f.installed_version() == "1.0"

    def test_to_dict(self, sandbox) -> None:
        sandbox.write_formula("foo", dependencies=["bar"])
        data = sandbox.load("foo").to_dict()
        assert data["name"] == "foo"
        assert data["dependencies"] == [{"name": "bar", "tags": []}]
        assert data["installed"] is False
        assert data["require_universal_deps"] is False


class TestFormulaRegistry:
    def test_load_is_cached(self, sandbox) -> None:
        sandbox.write_formula("foo")
        assert sandbox.load("foo") is sandbox.load("foo")

    def test_unavailable(self, sandbox) -> None:
        with pytest.raises(FormulaUnavailableError, match="nope"):
            sandbox.load("nope")

    def test_unsafe_name(self, sandbox) -> None:
        with pytest.raises(ValidationError):
            sandbox.load("../etc/passwd")

    def test_tap_formula(self, sandbox) -> None:
        tap = sandbox.registry.tap_dir("acme", "tools") / "Formula"
        tap.mkdir(parents=True)
        (tap / "widget.yml").write_text("name: widget\nversion: '3'\n", encoding="utf-8")
        assert sandbox.load("acme/tools/widget").version == "3"

    def test_tap_formula_unavailable(self, sandbox) -> None:
        with pytest.raises(TapFormulaUnavailableError) as exc:
            sandbox.load("acme/tools/widget")
        assert (exc.value.user, exc.value.repo) == ("acme", "tools")

    def test_all_names(self, sandbox) -> None:
        sandbox.write_formula("b")
        sandbox.write_formula("a")
        assert sandbox.registry.all_names() == ["a", "b"]

    def test_dependent_in_message(self) -> None:
        e = FormulaUnavailableError("bar")
        e.dependent = "foo"
        assert "被 foo 依赖" in str(e)


class TestTapManager:
    def test_existing_tap_not_reinstalled(self, sandbox) -> None:
        sandbox.registry.tap_dir("acme", "tools").mkdir(parents=True)
        assert TapManager(sandbox.registry).install_tap("acme", "tools") is False

    def test_clone_failure_returns_false(self, sandbox) -> None:
        sandbox.config.tap_url_template = str(sandbox.root / "no-such-repo-{user}-{repo}")
        assert TapManager(sandbox.registry).install_tap("acme", "tools") is False

    def test_git_missing_returns_false(self, sandbox) -> None:
        err = ExecutionError("tap clone无法执行: No such file or directory: 'git'")
        with patch("cellarman.core.registry.run_cmd", side_effect=err):
            assert TapManager(sandbox.registry).install_tap("acme", "tools") is False

    def test_clone_success_clears_cache(self, sandbox) -> None:
        def clone(args, **kwargs):  # noqa: ANN001, ANN003, ANN202
            dest = sandbox.registry.tap_dir("acme", "tools")
            assert args[-1] == str(dest)
            dest.mkdir(parents=True)
            (dest / "widget.yml").write_text("name: widget\nversion: '2.0'\n", encoding="utf-8")

        with patch("cellarman.core.registry.run_cmd", side_effect=clone) as m:
            assert TapManager(sandbox.registry).install_tap("acme", "tools") is True
        assert m.call_args.kwargs["label"] == "tap clone"
        assert sandbox.registry.load("acme/tools/widget").version == "2.0"

    def test_split_tap_name(self) -> None:
        assert split_tap_name("acme/tools/widget") == ("acme", "tools", "widget")
        assert split_tap_name("widget") is None
