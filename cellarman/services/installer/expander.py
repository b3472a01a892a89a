"""前置条件 / 依赖展开

InstallExpander 针对一次安装的根包，按有效构建选项对依赖图剪枝：

expand_requirements()
    工作栈从根包开始，逐个包检查其（及未被剪枝的递归依赖的）前置条件，
    剪枝优先级:
      1. 可选 / 推荐且有效选项排除         -> 忽略
      2. 构建期前置条件，依赖方是根包且根包倒瓶 -> 忽略
      3. 构建期前置条件，非根依赖方自身以 bottle 安装 -> 忽略
      4. 有默认替代包且需要安装它            -> 转为依赖（插到列表最前），替代包入栈
      5. 已满足                             -> 忽略
      6. 其余记录在依赖方名下；致命的最后一次性汇总报错

expand_dependencies()
    传递闭包展开，每条边按依赖方的有效选项判定：
    排除的可选 / 推荐边及构建期边剪枝；已安装且选项满足的跳过
    （默认仍展开其子树，见 InstallerMode.expand_skipped_deps）。

每个包的有效构建选项在第一次用到时计算并冻结，之后不再变化。
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import TYPE_CHECKING

from cellarman.core.dependency import (
    Dependency,
    ExpandAction,
    Requirement,
    expand,
    recursive_requirements,
)
from cellarman.core.exceptions import UnsatisfiedRequirementsError
from cellarman.core.options import BuildOptions, Option, Options
from cellarman.core.tab import Tab

if TYPE_CHECKING:
    from cellarman.core.protocols import Formula
    from cellarman.services.installer.bottle_policy import BottlePolicy
    from cellarman.services.installer.models import InstallerMode

logger = logging.getLogger(__name__)

UNIVERSAL = Option("universal")


class InstallExpander:
    def __init__(
        self, root: Formula, options: Options, mode: InstallerMode,
        policy: BottlePolicy, *, pour_failed: bool = False,
    ) -> None:
        self.root = root
        self.options = options
        self.mode = mode
        self.policy = policy
        self.pour_failed = pour_failed
        self._inherited: dict[str, Options] = {}
        self._effective: dict[str, BuildOptions] = {}

    # ------------------------------------------------------------------
    # 选项
    # ------------------------------------------------------------------

    @property
    def root_pours(self) -> bool:
        return self.policy.pour_bottle(
            self.root, self.mode, self.options, pour_failed=self.pour_failed,
        )

    def _is_root(self, formula: Formula) -> bool:
        return formula.name == self.root.name

    def inherited_options_for(self, dep: Dependency) -> Options:
        """universal 从根包传给声明支持它的非构建期依赖

        根包请求了 universal，或根包声明 require_universal_deps 时生效。
        """
        wanted = UNIVERSAL in self.options or self.root.require_universal_deps
        if dep.build or not wanted:
            return Options()
        if dep.to_formula().option_defined(UNIVERSAL.name):
            return Options([UNIVERSAL])
        return Options()

    def inherited_options(self, name: str) -> Options:
        return self._inherited.get(name, Options())

    def effective_build_options_for(self, dependent: Formula) -> BuildOptions:
        """根包用显式请求，其余用继承选项；都并上安装回执中的选项"""
        if dependent.name not in self._effective:
            requested = self.options if self._is_root(dependent) else self.inherited_options(dependent.name)
            args = requested | Tab.for_formula(dependent).used
            self._effective[dependent.name] = BuildOptions(args, dependent.options)
        return self._effective[dependent.name]

    def _record_inherited(self, dep: Dependency) -> Options:
        if dep.name not in self._inherited:
            self._inherited[dep.name] = self.inherited_options_for(dep)
        return self._inherited[dep.name]

    # ------------------------------------------------------------------
    # 公共剪枝规则
    # ------------------------------------------------------------------

    def _excluded(self, edge: Dependency | Requirement, build: BuildOptions) -> bool:
        return (edge.optional or edge.recommended) and build.without(edge)

    def _build_edge_not_needed(self, dependent: Formula, edge: Dependency | Requirement,
                               build: BuildOptions) -> bool:
        if not edge.build:
            return False
        if self._is_root(dependent):
            return self.root_pours
        return self.policy.install_bottle_for_dependency(
            dependent,
            build_from_source=self.mode.build_from_source,
            dependent_used_options=build.used_options,
        )

    def _prune_only(self, dependent: Formula, dep: Dependency) -> ExpandAction:
        self._record_inherited(dep)
        build = self.effective_build_options_for(dependent)
        if self._excluded(dep, build) or self._build_edge_not_needed(dependent, dep, build):
            return ExpandAction.PRUNE
        return ExpandAction.CONTINUE

    # ------------------------------------------------------------------
    # 前置条件
    # ------------------------------------------------------------------

    def _install_default_formula(self, req: Requirement, build: BuildOptions) -> bool:
        if not req.default_formula:
            return False
        if self._excluded(req, build):
            return False
        if not req.satisfied:
            return True
        return self.root_pours or self.mode.build_bottle

    def expand_requirements(self) -> tuple[dict[str, list[Requirement]], list[Dependency]]:
        """返回 (依赖方 -> 未满足的前置条件, 由默认替代包转成的依赖)"""
        unsatisfied: dict[str, list[Requirement]] = defaultdict(list)
        deps: list[Dependency] = []
        stack: list[Formula] = [self.root]
        seen: set[str] = set()

        def visit(dependent: Formula, req: Requirement) -> ExpandAction:
            build = self.effective_build_options_for(dependent)
            if self._excluded(req, build):
                return ExpandAction.PRUNE
            if self._build_edge_not_needed(dependent, req, build):
                return ExpandAction.PRUNE
            if self._install_default_formula(req, build):
                dep = req.to_dependency()
                if all(d.name != dep.name for d in deps):
                    deps.insert(0, dep)
                    stack.insert(0, dep.to_formula())
                return ExpandAction.PRUNE
            if req.satisfied:
                return ExpandAction.PRUNE
            if req not in unsatisfied[dependent.name]:
                unsatisfied[dependent.name].append(req)
            return ExpandAction.CONTINUE

        while stack:
            formula = stack.pop()
            if formula.name in seen:
                continue
            seen.add(formula.name)
            recursive_requirements(formula, visit, self._prune_only)

        return dict(unsatisfied), deps

    @staticmethod
    def check_requirements(unsatisfied: dict[str, list[Requirement]]) -> None:
        """逐条报告未满足的前置条件，致命的汇总后一次性抛出"""
        fatals: list[Requirement] = []
        for dependent, reqs in unsatisfied.items():
            for req in reqs:
                log = logger.error if req.fatal else logger.warning
                log("%s: %s", dependent, req.explain())
                if req.fatal:
                    fatals.append(req)
        if fatals:
            raise UnsatisfiedRequirementsError(fatals)

    # ------------------------------------------------------------------
    # 依赖
    # ------------------------------------------------------------------

    def satisfied(self, dep: Dependency, inherited: Options) -> bool:
        """已安装，且边要求的选项与继承选项都已在安装回执中"""
        formula = dep.to_formula()
        if not formula.installed:
            return False
        missing = (dep.options | inherited) - Tab.for_formula(formula).used
        return not missing

    def expand_dependencies(self, deps: list[Dependency]) -> list[tuple[Dependency, Options]]:
        """返回依赖优先、去重的 (依赖, 继承选项) 列表"""

        def visit(dependent: Formula, dep: Dependency) -> ExpandAction:
            inherited = self._record_inherited(dep)
            build = self.effective_build_options_for(dependent)
            if self._excluded(dep, build):
                return ExpandAction.PRUNE
            if self._build_edge_not_needed(dependent, dep, build):
                return ExpandAction.PRUNE
            if self.satisfied(dep, inherited):
                return ExpandAction.SKIP
            return ExpandAction.CONTINUE

        expanded = expand(
            self.root, deps, visit, expand_skipped=self.mode.expand_skipped_deps,
        )
        return [(dep, self.inherited_options(dep.name)) for dep in expanded]

    def compute_dependencies(self) -> list[tuple[Dependency, Options]]:
        """前置条件检查 + 依赖展开，发生在任何文件系统变更之前"""
        unsatisfied, req_deps = self.expand_requirements()
        self.check_requirements(unsatisfied)
        return self.expand_dependencies(req_deps + list(self.root.deps))
