"""安装编排器

状态顺序:
  Locking -> VerifyingPreconditions -> CheckingConflicts -> ResolvingDependencies
  -> [SkippedOnlyDeps] -> PouringBottle | BuildingSource -> Linking
  -> FixingReferences -> PostInstall -> Finished
终止失败状态: RolledBack（构建 / 倒瓶失败，效果全部撤销）、
PartiallyFailed（已安装，但链接 / 安装后步骤有警告）。

错误传播:
  - 构建之前的一切失败都是致命的，且不留下任何文件
  - 构建失败致命，keg 整体删除
  - 倒瓶失败回退到源码构建（developer 严格模式下致命）
  - 构建 / 倒瓶成功之后的步骤尽力而为：逐个捕获、报告并设置失败标志
"""

from __future__ import annotations

import logging
import shutil
import time
from pathlib import Path
from typing import TYPE_CHECKING

from cellarman.core.exceptions import (
    BottleError,
    BuildError,
    CannotInstallFormulaError,
    FormulaAlreadyInstalledError,
    FormulaConflictError,
    FormulaInstallationAlreadyAttemptedError,
    FormulaUnavailableError,
    TapFormulaUnavailableError,
    ValidationError,
)
from cellarman.core.keg import Keg, format_size
from cellarman.core.options import Options
from cellarman.core.tab import Tab
from cellarman.services.container import ServiceContainer, get_container
from cellarman.services.installer.bottle_policy import BottlePolicy
from cellarman.services.installer.cleaner import Cleaner
from cellarman.services.installer.expander import InstallExpander
from cellarman.services.installer.linker import KegLinker
from cellarman.services.installer.models import (
    InstallerMode,
    InstallReport,
    InstallState,
)
from cellarman.services.installer.swap import atomic_dependency_swap
from cellarman.utils.signals import ignore_interrupts
from cellarman.utils.yaml_io import atomic_write

if TYPE_CHECKING:
    from cellarman.core.dependency import Dependency
    from cellarman.core.protocols import Formula

logger = logging.getLogger(__name__)


def pretty_duration(seconds: float) -> str:
    if seconds < 60:
        return f"{seconds:.1f} 秒"
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes} 分 {secs} 秒"


class FormulaInstaller:
    """一个包的安装编排器；依赖安装以 dependency_mode 递归创建同类实例"""

    def __init__(
        self, formula: Formula, *,
        mode: InstallerMode | None = None,
        options: Options | None = None,
        container: ServiceContainer | None = None,
    ) -> None:
        self.f = formula
        self.mode = mode or InstallerMode()
        self.options = options or Options()
        self.c = container or get_container()
        self.config = self.c.config
        self.context = self.c.context
        self.policy = BottlePolicy(self.config, self.c.plugins)
        self.report = InstallReport(name=formula.name, options=self.options)

        self.show_header = self.mode.show_header
        self.pour_failed = False
        self.poured_bottle = False
        self._start_time: float | None = None

    @property
    def developer(self) -> bool:
        return self.mode.developer or self.config.developer

    def pour_bottle(self, warn: bool = False) -> bool:
        return self.policy.pour_bottle(
            self.f, self.mode, self.options, pour_failed=self.pour_failed, warn=warn,
        )

    # ------------------------------------------------------------------
    # 顶层入口
    # ------------------------------------------------------------------

    def run(self) -> InstallReport:
        """顶层安装；结束时清空已尝试集合，失败标志保留到调用方读取"""
        try:
            self.perform()
        finally:
            self.context.end_run()
        return self.report

    def perform(self) -> None:
        """prelude -> 加锁 -> install -> caveats -> finish

        锁在任何退出路径上由持有者释放；嵌套安装不是持有者，不会提前释放上层的锁。
        """
        self.prelude()
        self.report.enter(InstallState.LOCKING)
        with self.context.locks.hold(self._lock_names(), owner=self):
            self.check_install_sanity()
            try:
                self.install()
            except (BuildError, BottleError, KeyboardInterrupt):
                self.report.enter(InstallState.ROLLED_BACK)
                raise
            self.show_caveats()
            self.finish()

    def prelude(self) -> None:
        if not self.mode.ignore_deps:
            self.verify_deps_exist()

    # ------------------------------------------------------------------
    # 变更前检查
    # ------------------------------------------------------------------

    def verify_deps_exist(self) -> None:
        """解析全部递归依赖；缺失的 tap 自动安装后重试"""
        try:
            while True:
                try:
                    for dep in self.f.recursive_dependencies():
                        dep.to_formula()
                    return
                except TapFormulaUnavailableError as e:
                    if not self.c.taps.install_tap(e.user, e.repo):
                        raise
                    logger.info("已安装 tap %s/%s，重新解析 %s 的依赖", e.user, e.repo, self.f.name)
        except FormulaUnavailableError as e:
            e.dependent = self.f.name
            raise

    def _lock_names(self) -> list[str]:
        names = [self.f.name]
        if not self.mode.ignore_deps:
            names += [dep.name for dep in self.f.recursive_dependencies()]
        return names

    @property
    def hold_locks(self) -> bool:
        return self.context.locks.is_holder(self)

    def check_install_sanity(self) -> None:
        self.report.enter(InstallState.VERIFYING_PRECONDITIONS)
        f = self.f
        if f.name in self.context.attempted:
            raise FormulaInstallationAlreadyAttemptedError(f.name)

        if f.installed:
            msg = f"{f.name}-{f.installed_version()} 已安装"
            if not (f.linked_keg.is_symlink() or f.keg_only):
                msg += "，只是没有链接"
            raise FormulaAlreadyInstalledError(msg)

        if not self.mode.ignore_deps:
            unlinked = [
                dep.name for dep in
                (d.to_formula() for d in f.recursive_dependencies())
                if dep.installed and not dep.keg_only and not dep.linked_keg.is_dir()
            ]
            if unlinked:
                raise CannotInstallFormulaError(
                    f"必须先执行 cellarman link {' '.join(unlinked)}，才能安装 {f.name}"
                )

    def check_conflicts(self) -> None:
        self.report.enter(InstallState.CHECKING_CONFLICTS)
        if self.mode.force:
            return
        linked = [
            name for name in self.f.conflicts
            if (self.config.linked_dir / name).is_symlink()
            and (self.config.linked_dir / name).resolve().is_dir()
        ]
        if linked:
            raise FormulaConflictError(self.f.name, linked)

    # ------------------------------------------------------------------
    # 依赖
    # ------------------------------------------------------------------

    def compute_and_install_dependencies(self) -> None:
        self.report.enter(InstallState.RESOLVING_DEPENDENCIES)
        expander = InstallExpander(
            self.f, self.options, self.mode, self.policy, pour_failed=self.pour_failed,
        )
        deps = expander.compute_dependencies()
        if not deps and self.mode.only_deps:
            logger.info("%s 的全部依赖都已满足", self.f.name)
            return
        self.install_dependencies(deps)

    def install_dependencies(self, deps: list[tuple[Dependency, Options]]) -> None:
        if len(deps) > 1:
            logger.info("安装 %s 的依赖: %s", self.f.name, ", ".join(d.name for d, _ in deps))
        for dep, inherited in deps:
            self.install_dependency(dep, inherited)
        if deps:
            self.show_header = True

    def install_dependency(self, dep: Dependency, inherited: Options) -> None:
        df = dep.to_formula()
        tab = Tab.for_formula(df)
        with atomic_dependency_swap(df, self.config):
            fi = FormulaInstaller(
                df,
                mode=self.mode.for_dependency(),
                options=tab.used | dep.options | inherited,
                container=self.c,
            )
            logger.info("安装 %s 的依赖: %s", self.f.name, dep.name)
            fi.perform()
        self.report.dependencies.append(df.name)
        self.report.warnings.extend(fi.report.warnings)
        self.report.conflicts.extend(fi.report.conflicts)

    # ------------------------------------------------------------------
    # 安装
    # ------------------------------------------------------------------

    def install(self) -> None:
        f = self.f
        record = f.linked_keg
        if record.is_symlink() and record.resolve().is_dir():
            raise CannotInstallFormulaError(
                f"{f.name}-{record.resolve().name} 已安装并链接\n"
                f"要安装这个版本，请先执行 cellarman unlink {f.name}"
            )

        self.check_conflicts()

        if not self.mode.ignore_deps:
            self.compute_and_install_dependencies()

        if self.mode.only_deps:
            self.report.enter(InstallState.SKIPPED_ONLY_DEPS)
            return

        arch = self.mode.bottle_arch
        if self.mode.build_bottle and arch and arch not in self.config.bottle_archs:
            raise ValidationError(f"--bottle-arch 不支持的架构: {arch}")

        if self.show_header:
            logger.info("安装 %s", f.name, extra={"formula": f.name})
        self.c.plugins.fire("pre_install", formula=f)

        self.context.attempted.add(f.name)

        if self.pour_bottle(warn=True):
            self.report.enter(InstallState.POURING_BOTTLE)
            try:
                self.pour()
            except BaseException as e:
                with ignore_interrupts():
                    Keg(f.prefix, self.config).uninstall()
                if self.developer or not isinstance(e, Exception):
                    raise
                self.pour_failed = True
                logger.error("%s", e)
                logger.warning("bottle 安装失败，改为源码构建 %s", f.name,
                               extra={"formula": f.name})
                self.report.pour_failed = True
            else:
                self.poured_bottle = True
                self.report.poured_bottle = True

        if not self.poured_bottle:
            if self.pour_failed and not self.mode.ignore_deps:
                self.compute_and_install_dependencies()
            self.report.enter(InstallState.BUILDING_SOURCE)
            self.build()
            self.clean()

        if not f.installed:
            logger.warning("%s 中没有安装任何内容", f.prefix)

    def build_flags(self) -> list[str]:
        flags: list[str] = []
        if self.mode.build_bottle:
            flags.append("--build-bottle")
            if self.mode.bottle_arch:
                flags.append(f"--bottle-arch={self.mode.bottle_arch}")
        if self.mode.interactive:
            flags.append("--interactive")
        if self.mode.verbose:
            flags.append("--verbose")
        if self.mode.debug:
            flags.append("--debug")
        return flags

    def spec_flag(self) -> str:
        return {"head": "--HEAD", "devel": "--devel"}.get(self.f.active_spec, "")

    def build(self) -> None:
        logs = Path(self.config.logs_dir) / self.f.name
        if logs.is_dir():
            for p in logs.iterdir():
                if p.is_file():
                    p.unlink()
        self._start_time = time.monotonic()
        self.c.build_runner.run(
            self.f, self.options,
            spec_flag=self.spec_flag(),
            extra_flags=self.build_flags(),
            interactive=self.mode.interactive,
        )

    def pour(self) -> None:
        f = self.f
        plugins = self.c.plugins
        if plugins.formula_has_bottle(f) and plugins.pour_formula_bottle(f):
            return

        bottle = f.bottle
        if bottle is None:
            raise BottleError(f"{f.name} 没有可用的 bottle")
        path = bottle.fetch()
        if f.local_bottle_path is None:
            bottle.verify_download_integrity(path)
        bottle.stage(path)

        self._copy_bottle_etc_var()
        shutil.rmtree(f.bottle_prefix, ignore_errors=True)

        tab = Tab.for_keg(f.prefix)
        tab.poured_from_bottle = True
        tab.write()

    def _copy_bottle_etc_var(self) -> None:
        """.bottle/{etc,var} 复制到共享前缀；已存在的文件保留，新文件写为 .default"""
        base = self.f.bottle_prefix
        root = self.config.prefix_path
        for top in ("etc", "var"):
            src_dir = base / top
            if not src_dir.is_dir():
                continue
            for src in sorted(src_dir.rglob("*")):
                if src.is_dir():
                    continue
                dest = root / src.relative_to(base)
                if dest.exists():
                    dest = dest.with_name(dest.name + ".default")
                dest.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(src, dest)

    # ------------------------------------------------------------------
    # 安装后步骤（尽力而为）
    # ------------------------------------------------------------------

    def _warn(self, message: str, exc: BaseException) -> None:
        logger.error("%s: %s", message, exc, exc_info=self.mode.debug,
                     extra={"formula": self.f.name})
        self.report.warn(f"{message}: {exc}")
        self.context.mark_failed()

    def clean(self) -> None:
        try:
            Cleaner(self.f.prefix).clean()
        except Exception as e:
            self._warn("清理步骤未完成（安装本身成功，仍会继续链接）", e)

    def install_plist(self) -> None:
        if not self.f.plist:
            return
        try:
            atomic_write(self.f.prefix / f"{self.f.plist_name}.plist", self.f.plist, mode=0o644)
        except Exception as e:
            self._warn("plist 文件安装失败", e)

    def fix_install_names(self, keg: Keg) -> None:
        if not self.poured_bottle:
            return
        if self.f.bottle is not None and self.f.bottle.skip_relocation:
            return
        try:
            keg.relocate_placeholders()
        except Exception as e:
            self._warn("路径引用修正失败，使用或链接该包时可能出现问题", e)

    def post_install(self) -> None:
        try:
            self.f.post_install()
        except Exception as e:
            self._warn(f"post_install 步骤未完成，可重试: cellarman postinstall {self.f.name}", e)

    def show_caveats(self) -> None:
        if self.mode.only_deps:
            return
        parts: list[str] = []
        if self.f.caveats:
            parts.append(self.f.caveats.strip())
        if self.f.keg_only:
            parts.append(
                f"{self.f.name} 是 keg-only 包，没有链接到 {self.config.prefix}，"
                f"可通过 {self.f.opt_prefix} 使用"
            )
        if parts:
            self.report.caveats = "\n\n".join(parts)
            logger.info("注意事项:\n%s", self.report.caveats)

    @property
    def build_time(self) -> float | None:
        if self._start_time is None or self.mode.interactive:
            return None
        return time.monotonic() - self._start_time

    def summary(self, keg: Keg) -> str:
        s = ""
        if not self.config.no_emoji and self.config.install_badge:
            s += f"{self.config.install_badge}  "
        files, size = keg.disk_usage()
        s += f"{keg.path}: {files} 个文件, {format_size(size)}"
        if self.build_time is not None:
            s += f", 构建耗时 {pretty_duration(self.build_time)}"
        return s

    def record_install_reason(self, keg: Keg) -> None:
        """在安装回执中记下是作为依赖安装还是由用户直接请求"""
        try:
            tab = Tab.for_keg(keg.path)
            tab.installed_as_dependency = self.mode.dependency_mode
            tab.installed_on_request = not self.mode.dependency_mode
            tab.write()
        except Exception as e:
            self._warn("安装回执更新失败", e)

    def finish(self) -> None:
        if self.mode.only_deps:
            return
        keg = Keg(self.f.prefix, self.config)
        if keg.exists():
            self.install_plist()
            self.report.enter(InstallState.LINKING)
            KegLinker(self.context, self.report, debug=self.mode.debug).link(self.f, keg)
            self.report.enter(InstallState.FIXING_REFERENCES)
            self.fix_install_names(keg)
            self.record_install_reason(keg)
            self.report.enter(InstallState.POST_INSTALL)
            self.post_install()
            self.report.build_time = self.build_time
            self.report.summary = self.summary(keg)
            logger.info("%s", self.report.summary)
        self.report.enter(
            InstallState.PARTIALLY_FAILED if self.report.warnings else InstallState.FINISHED
        )
        self.c.plugins.fire("post_install", formula=self.f, report=self.report)
