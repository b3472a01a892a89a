"""安装编排数据模型测试"""

from __future__ import annotations

from cellarman.services.installer.models import (
    InstallContext,
    InstallerMode,
    InstallReport,
    InstallState,
)


class TestInstallerMode:
    def test_for_dependency_inherits_subset(self) -> None:
        mode = InstallerMode(
            build_from_source=True, verbose=True, debug=True, force=True,
            only_deps=True, interactive=True, build_bottle=True, bottle_arch="arm64",
            expand_skipped_deps=False,
        )
        dep = mode.for_dependency()
        assert dep.build_from_source and dep.verbose and dep.debug
        assert dep.ignore_deps and dep.dependency_mode
        assert not dep.expand_skipped_deps
        assert not (dep.force or dep.only_deps or dep.interactive or dep.build_bottle)
        assert dep.bottle_arch == ""


class TestInstallReport:
    def test_states(self) -> None:
        report = InstallReport(name="foo")
        assert report.state is None
        assert not report.success
        report.enter(InstallState.LOCKING)
        report.enter(InstallState.PARTIALLY_FAILED)
        assert report.state is InstallState.PARTIALLY_FAILED
        assert report.success

    def test_rolled_back_is_failure(self) -> None:
        report = InstallReport(name="foo")
        report.enter(InstallState.ROLLED_BACK)
        assert not report.success


class TestInstallContext:
    def test_reset(self, tmp_path) -> None:
        ctx = InstallContext(tmp_path)
        ctx.attempted.add("foo")
        ctx.mark_failed()
        ctx.reset()
        assert ctx.attempted == set()
        assert not ctx.failed

    def test_end_run_keeps_failed_flag(self, tmp_path) -> None:
        ctx = InstallContext(tmp_path)
        ctx.attempted.add("foo")
        ctx.mark_failed()
        ctx.end_run()
        assert ctx.attempted == set()
        assert ctx.failed
