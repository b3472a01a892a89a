"""安装编排数据模型

数据类：
- InstallerMode: 一次安装调用的全部模式开关
- InstallState: 编排状态机的状态
- InstallReport: 安装报告
- InstallContext: 一次顶层安装的进程级状态（已尝试集合、锁登记表、失败标志）
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from cellarman.core.lock import LockSet
from cellarman.core.options import Options


@dataclass
class InstallerMode:
    """安装模式开关"""

    ignore_deps: bool = False
    only_deps: bool = False
    build_from_source: bool = False
    build_bottle: bool = False
    force_bottle: bool = False
    interactive: bool = False
    verbose: bool = False
    debug: bool = False
    force: bool = False             # 跳过冲突检查
    developer: bool = False         # 严格模式：倒瓶失败直接致命
    dependency_mode: bool = False   # 作为其他包的依赖被安装
    show_header: bool = False
    expand_skipped_deps: bool = True
    bottle_arch: str = ""

    def for_dependency(self) -> InstallerMode:
        """依赖安装继承 build_from_source / verbose / debug，其余复位

        依赖的依赖已由上层一次性展开安装，这里固定 ignore_deps。
        """
        return InstallerMode(
            ignore_deps=True,
            build_from_source=self.build_from_source,
            verbose=self.verbose,
            debug=self.debug,
            developer=self.developer,
            dependency_mode=True,
            expand_skipped_deps=self.expand_skipped_deps,
        )


class InstallState(str, enum.Enum):
    LOCKING = "locking"
    VERIFYING_PRECONDITIONS = "verifying_preconditions"
    CHECKING_CONFLICTS = "checking_conflicts"
    RESOLVING_DEPENDENCIES = "resolving_dependencies"
    SKIPPED_ONLY_DEPS = "skipped_only_deps"
    POURING_BOTTLE = "pouring_bottle"
    BUILDING_SOURCE = "building_source"
    LINKING = "linking"
    FIXING_REFERENCES = "fixing_references"
    POST_INSTALL = "post_install"
    FINISHED = "finished"
    ROLLED_BACK = "rolled_back"
    PARTIALLY_FAILED = "partially_failed"


@dataclass
class InstallReport:
    """一次安装（含递归依赖）的报告"""

    name: str
    options: Options = field(default_factory=Options)
    states: list[InstallState] = field(default_factory=list)
    dependencies: list[str] = field(default_factory=list)
    poured_bottle: bool = False
    pour_failed: bool = False       # 倒瓶失败后回退到了源码构建
    build_time: float | None = None
    summary: str = ""
    caveats: str = ""
    warnings: list[str] = field(default_factory=list)
    conflicts: list[Path] = field(default_factory=list)

    @property
    def state(self) -> InstallState | None:
        return self.states[-1] if self.states else None

    def enter(self, state: InstallState) -> None:
        self.states.append(state)

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    @property
    def success(self) -> bool:
        return self.state in (InstallState.FINISHED, InstallState.PARTIALLY_FAILED,
                              InstallState.SKIPPED_ONLY_DEPS)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "options": self.options.names,
            "states": [s.value for s in self.states],
            "dependencies": self.dependencies,
            "poured_bottle": self.poured_bottle,
            "pour_failed": self.pour_failed,
            "build_time": self.build_time,
            "summary": self.summary,
            "caveats": self.caveats,
            "warnings": self.warnings,
            "conflicts": [str(p) for p in self.conflicts],
        }


class InstallContext:
    """一次顶层安装的进程级状态

    由 ServiceContainer 持有，一次顶层安装及其递归的依赖安装共享同一个实例。
    已尝试集合在顶层安装结束时清空（end_run）；失败标志跨越同一命令行调用中的
    多个顶层安装，由 reset() 清除。不支持同一进程内并发的顶层安装。
    """

    def __init__(self, locks_dir: Path) -> None:
        self.attempted: set[str] = set()
        self.locks = LockSet(locks_dir)
        self.failed = False

    def mark_failed(self) -> None:
        self.failed = True

    def end_run(self) -> None:
        self.attempted.clear()

    def reset(self) -> None:
        self.attempted.clear()
        self.failed = False
