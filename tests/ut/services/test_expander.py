"""前置条件 / 依赖展开测试"""

from __future__ import annotations

import pytest

from cellarman.core.exceptions import UnsatisfiedRequirementsError
from cellarman.core.options import Options
from cellarman.plugins import PluginRegistry
from cellarman.services.installer.bottle_policy import BottlePolicy
from cellarman.services.installer.expander import InstallExpander
from cellarman.services.installer.models import InstallerMode


def expander(sandbox, name: str, options: list[str] | None = None,
             **mode: bool) -> InstallExpander:
    return InstallExpander(
        sandbox.load(name),
        Options(options or []),
        InstallerMode(**mode),
        BottlePolicy(sandbox.config, PluginRegistry()),
    )


def names(pairs) -> list[str]:  # noqa: ANN001
    return [dep.name for dep, _ in pairs]


class TestExpandDependencies:
    def test_optional_skipped_without_option(self, sandbox) -> None:
        sandbox.write_formula("b")
        sandbox.write_formula("c")
        sandbox.write_formula("a", dependencies=[{"name": "b", "tags": ["optional"]}, "c"])
        assert names(expander(sandbox, "a").compute_dependencies()) == ["c"]

    def test_optional_included_with_option(self, sandbox) -> None:
        sandbox.write_formula("d")
        sandbox.write_formula("b", dependencies=["d"])
        sandbox.write_formula("c")
        sandbox.write_formula("a", dependencies=[{"name": "b", "tags": ["optional"]}, "c"])
        deps = expander(sandbox, "a", ["with-b"]).compute_dependencies()
        assert names(deps) == ["d", "b", "c"]

    def test_recommended_excluded_by_without(self, sandbox) -> None:
        sandbox.write_formula("r")
        sandbox.write_formula("a", dependencies=[{"name": "r", "tags": ["recommended"]}])
        assert names(expander(sandbox, "a").compute_dependencies()) == ["r"]
        assert names(expander(sandbox, "a", ["without-r"]).compute_dependencies()) == []

    def test_build_dependency_pruned_when_root_pours(self, sandbox) -> None:
        archive = sandbox.make_bottle("a")
        sandbox.write_formula("cmake")
        sandbox.write_formula("a", dependencies=[{"name": "cmake", "tags": ["build"]}],
                              bottle={"path": str(archive)})
        assert names(expander(sandbox, "a").compute_dependencies()) == []
        deps = expander(sandbox, "a", build_from_source=True).compute_dependencies()
        assert names(deps) == ["cmake"]

    def test_build_dependency_of_bottled_dependency_pruned(self, sandbox) -> None:
        archive = sandbox.make_bottle("b")
        sandbox.write_formula("cmake")
        sandbox.write_formula("b", dependencies=[{"name": "cmake", "tags": ["build"]}],
                              bottle={"path": str(archive)})
        sandbox.write_formula("a", dependencies=["b"])
        assert names(expander(sandbox, "a").compute_dependencies()) == ["b"]

    def test_satisfied_dependency_skipped_but_expanded(self, sandbox) -> None:
        sandbox.write_formula("d")
        sandbox.write_formula("b", dependencies=["d"])
        sandbox.write_formula("a", dependencies=["b"])
        sandbox.fake_install("b")
        assert names(expander(sandbox, "a").compute_dependencies()) == ["d"]
        assert names(expander(sandbox, "a", expand_skipped_deps=False).compute_dependencies()) == []

    def test_installed_without_required_option_is_reinstalled(self, sandbox) -> None:
        sandbox.write_formula("b", options=["universal"])
        sandbox.write_formula("a", dependencies=[{"name": "b", "options": ["universal"]}])
        sandbox.fake_install("b")
        assert names(expander(sandbox, "a").compute_dependencies()) == ["b"]
        sandbox.fake_install("b", used=["universal"])
        assert names(expander(sandbox, "a").compute_dependencies()) == []

    def test_universal_inherited(self, sandbox) -> None:
        sandbox.write_formula("b", options=["universal"])
        sandbox.write_formula("c")
        sandbox.write_formula("t", options=["universal"])
        sandbox.write_formula("a", options=["universal"], dependencies=[
            "b", "c", {"name": "t", "tags": ["build"]},
        ])
        deps = dict(
            (dep.name, inherited)
            for dep, inherited in expander(sandbox, "a", ["universal"]).compute_dependencies()
        )
        assert deps["b"] == Options(["universal"])
        assert deps["c"] == Options()
        assert deps["t"] == Options()

    def test_universal_required_by_root(self, sandbox) -> None:
        sandbox.write_formula("b", options=["universal"])
        sandbox.write_formula("c")
        sandbox.write_formula("a", require_universal_deps=True, dependencies=["b", "c"])
        deps = dict(
            (dep.name, inherited)
            for dep, inherited in expander(sandbox, "a").compute_dependencies()
        )
        assert deps["b"] == Options(["universal"])
        assert deps["c"] == Options()

    def test_dependent_tab_options_prune(self, sandbox) -> None:
        # b 上次以 with-x 安装过，展开 b 的子依赖时沿用该选项
        sandbox.write_formula("x")
        sandbox.write_formula("b", dependencies=[{"name": "x", "tags": ["optional"]}])
        sandbox.write_formula("a", dependencies=["b"])
        sandbox.fake_install("b", used=["with-x"])
        assert names(expander(sandbox, "a").compute_dependencies()) == ["x"]

    def test_effective_options_frozen(self, sandbox) -> None:
        sandbox.write_formula("a", options=["universal"])
        exp = expander(sandbox, "a", ["universal"])
        first = exp.effective_build_options_for(sandbox.load("a"))
        exp.options = Options()
        assert exp.effective_build_options_for(sandbox.load("a")) is first


class TestExpandRequirements:
    def test_fatal_requirements_collected(self, sandbox, caplog) -> None:
        missing = str(sandbox.root / "missing")
        sandbox.write_formula("b", requirements=[
            {"name": "rb", "path": missing, "message": "需要 rb"},
        ])
        sandbox.write_formula("a", dependencies=["b"], requirements=[
            {"name": "ra", "path": missing},
            {"name": "soft", "path": missing, "fatal": False},
        ])
        with pytest.raises(UnsatisfiedRequirementsError) as exc:
            expander(sandbox, "a").compute_dependencies()
        assert sorted(r.name for r in exc.value.requirements) == ["ra", "rb"]
        assert "需要 rb" in caplog.text
        assert "soft" in caplog.text

    def test_non_fatal_only_warns(self, sandbox) -> None:
        sandbox.write_formula("a", requirements=[
            {"name": "soft", "path": str(sandbox.root / "missing"), "fatal": False},
        ])
        assert expander(sandbox, "a").compute_dependencies() == []

    def test_satisfied_requirement_ignored(self, sandbox) -> None:
        sandbox.write_formula("a", requirements=[{"name": "here", "path": str(sandbox.root)}])
        unsatisfied, deps = expander(sandbox, "a").expand_requirements()
        assert unsatisfied == {}
        assert deps == []

    def test_default_formula_becomes_dependency(self, sandbox) -> None:
        sandbox.write_formula("helper-dep")
        sandbox.write_formula("helper", dependencies=["helper-dep"])
        sandbox.write_formula("c")
        sandbox.write_formula("a", dependencies=["c"], requirements=[
            {"name": "x11", "path": str(sandbox.root / "missing"), "default_formula": "helper"},
        ])
        deps = expander(sandbox, "a").compute_dependencies()
        assert names(deps) == ["helper-dep", "helper", "c"]

    def test_optional_requirement_excluded(self, sandbox) -> None:
        sandbox.write_formula("a", requirements=[
            {"name": "x11", "path": str(sandbox.root / "missing"), "tags": ["optional"]},
        ])
        assert expander(sandbox, "a").compute_dependencies() == []
        with pytest.raises(UnsatisfiedRequirementsError):
            expander(sandbox, "a", ["with-x11"]).compute_dependencies()

    def test_build_requirement_pruned_when_pouring(self, sandbox) -> None:
        archive = sandbox.make_bottle("a")
        sandbox.write_formula("a", bottle={"path": str(archive)}, requirements=[
            {"name": "xcode", "path": str(sandbox.root / "missing"), "tags": ["build"]},
        ])
        assert expander(sandbox, "a").compute_dependencies() == []
        with pytest.raises(UnsatisfiedRequirementsError):
            expander(sandbox, "a", build_from_source=True).compute_dependencies()
