"""依赖 / 前置条件模型与通用图展开

Dependency   可安装的包依赖（边），带标签 required / recommended / optional / build
Requirement  不可安装的前置条件（外部工具、系统特性），可带一个默认替代包

expand() 对依赖图做传递闭包展开：每条边调用一次 visit 回调，
回调返回 ExpandAction 三态结果（继续 / 剪枝 / 跳过），不使用异常做流程控制。
结果按依赖优先的拓扑顺序排列，并按包名去重（保留第一次解析到的边）。
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Iterable

from cellarman.core.exceptions import DependencyCycleError, ValidationError
from cellarman.core.options import Options

if TYPE_CHECKING:
    from cellarman.core.protocols import Formula

FormulaLoader = Callable[[str], "Formula"]


class DependencyTag(str, enum.Enum):
    REQUIRED = "required"
    RECOMMENDED = "recommended"
    OPTIONAL = "optional"
    BUILD = "build"

    @classmethod
    def parse(cls, values: Iterable[str]) -> frozenset[DependencyTag]:
        tags = set()
        for v in values:
            try:
                tags.add(cls(v))
            except ValueError:
                raise ValidationError(f"未知的依赖标签: {v}") from None
        return frozenset(tags)


class ExpandAction(enum.Enum):
    """展开回调的返回值"""

    CONTINUE = "continue"   # 纳入结果并继续展开子树
    PRUNE = "prune"         # 丢弃该边及其子树
    SKIP = "skip"           # 不纳入结果，但（默认）仍展开其子树


class _Tagged:
    tags: frozenset[DependencyTag]

    @property
    def optional(self) -> bool:
        return DependencyTag.OPTIONAL in self.tags

    @property
    def recommended(self) -> bool:
        return DependencyTag.RECOMMENDED in self.tags

    @property
    def build(self) -> bool:
        return DependencyTag.BUILD in self.tags

    @property
    def required(self) -> bool:
        return not (self.optional or self.recommended)


@dataclass(frozen=True)
class Dependency(_Tagged):
    """依赖边：目标包名 + 标签 + 依赖方要求的选项"""

    name: str
    tags: frozenset[DependencyTag] = frozenset()
    options: Options = field(default_factory=Options, compare=False)
    loader: FormulaLoader | None = field(default=None, compare=False, repr=False)

    @property
    def option_name(self) -> str:
        # tap 限定名 user/repo/name 只取最后一段
        return self.name.rsplit("/", 1)[-1]

    def to_formula(self) -> Formula:
        if self.loader is None:
            raise ValidationError(f"依赖 {self.name} 没有绑定包加载器")
        return self.loader(self.name)

    def __str__(self) -> str:
        return self.name


@dataclass(eq=False)
class Requirement(_Tagged):
    """不可安装的前置条件"""

    name: str
    tags: frozenset[DependencyTag] = frozenset()
    fatal: bool = True
    default_formula: str | None = None
    probe: Callable[[], bool] | None = field(default=None, repr=False)
    message: str = ""
    loader: FormulaLoader | None = field(default=None, repr=False)

    @property
    def option_name(self) -> str:
        return self.name

    @property
    def satisfied(self) -> bool:
        return True if self.probe is None else bool(self.probe())

    def to_dependency(self) -> Dependency:
        if not self.default_formula:
            raise ValidationError(f"前置条件 {self.name} 没有默认替代包")
        return Dependency(self.default_formula, self.tags, loader=self.loader)

    def explain(self) -> str:
        return self.message or f"缺少前置条件 {self.name}"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Requirement):
            return NotImplemented
        return (self.name, self.tags) == (other.name, other.tags)

    def __hash__(self) -> int:
        return hash((self.name, self.tags))

    def __str__(self) -> str:
        return self.name


DependencyVisitor = Callable[["Formula", Dependency], ExpandAction]
RequirementVisitor = Callable[["Formula", Requirement], ExpandAction]


def expand(
    dependent: Formula,
    deps: Iterable[Dependency] | None = None,
    visit: DependencyVisitor | None = None,
    *,
    expand_skipped: bool = True,
) -> list[Dependency]:
    """展开 dependent 的传递依赖，返回依赖优先顺序的去重列表

    expand_skipped=False 时，SKIP 的边同 PRUNE 一样不再展开子树。
    """
    expanded: list[Dependency] = []
    roots = list(dependent.deps if deps is None else deps)
    _expand(dependent, roots, visit, expand_skipped, [dependent.name], expanded)
    return merge_repeats(expanded)


def _expand(
    dependent: Formula,
    deps: list[Dependency],
    visit: DependencyVisitor | None,
    expand_skipped: bool,
    chain: list[str],
    out: list[Dependency],
) -> None:
    for dep in deps:
        if dep.name == dependent.name:
            continue
        if dep.name in chain:
            raise DependencyCycleError([*chain, dep.name])

        action = visit(dependent, dep) if visit else ExpandAction.CONTINUE
        if action is ExpandAction.PRUNE:
            continue
        if action is ExpandAction.SKIP and not expand_skipped:
            continue

        formula = dep.to_formula()
        _expand(formula, list(formula.deps), visit, expand_skipped, [*chain, dep.name], out)
        if action is ExpandAction.CONTINUE:
            out.append(dep)


def merge_repeats(deps: Iterable[Dependency]) -> list[Dependency]:
    """按包名去重，保留第一次出现的边（及其选项）"""
    seen: set[str] = set()
    result: list[Dependency] = []
    for dep in deps:
        if dep.name in seen:
            continue
        seen.add(dep.name)
        result.append(dep)
    return result


def recursive_requirements(
    formula: Formula,
    visit: RequirementVisitor,
    dep_visit: DependencyVisitor | None = None,
) -> list[Requirement]:
    """对 formula 及其（经 dep_visit 剪枝后的）递归依赖的前置条件逐个调用 visit

    返回未被剪枝的前置条件（去重，保持顺序）。
    """
    formulae = [formula] + [d.to_formula() for d in expand(formula, visit=dep_visit)]
    kept: list[Requirement] = []
    for f in formulae:
        for req in f.requirements:
            if visit(f, req) is ExpandAction.PRUNE:
                continue
            if req not in kept:
                kept.append(req)
    return kept
