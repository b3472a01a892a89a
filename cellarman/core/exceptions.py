"""统一异常体系

所有业务异常继承 CellarError，按安装阶段划分：
  - 解析阶段（ResolutionError）：任何文件系统变更之前抛出，致命
  - 获取阶段（FormulaUnavailableError）：缺失的 tap 会自动安装后重试一次
  - 构建阶段（BuildError）：致命，触发 keg 整体回滚
  - 倒瓶阶段（BottleError）：可恢复，回退到源码构建
  - 链接阶段（LinkError）：安装后的警告，不回滚
CLI 层据此输出一行友好提示并以非零状态退出。
"""

from __future__ import annotations

from typing import Any


class CellarError(Exception):
    """cellarman 基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(CellarError):
    """配置文件缺失或内容无效"""

    code = "CONFIG_ERROR"


class ValidationError(CellarError):
    """包描述文件内容校验失败"""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


class ExecutionError(CellarError):
    """外部命令执行失败"""

    code = "EXECUTION_ERROR"

    def __init__(
        self, message: str, *,
        cmd: str = "", returncode: int | None = None, output: str = "",
    ) -> None:
        super().__init__(message)
        self.cmd = cmd
        self.returncode = returncode
        self.output = output


# =========================================================================
# 获取阶段
# =========================================================================

class FormulaUnavailableError(CellarError):
    """包描述文件不存在"""

    code = "FORMULA_UNAVAILABLE"

    def __init__(self, name: str, dependent: str = "") -> None:
        self.name = name
        self.dependent = dependent
        super().__init__(self._message())

    def _message(self) -> str:
        msg = f"没有可用的包: {self.name}"
        if self.dependent and self.dependent != self.name:
            msg += f" (被 {self.dependent} 依赖)"
        return msg

    def __str__(self) -> str:
        # dependent 在抛出后才补上，消息需要随之更新
        return self._message()


class TapFormulaUnavailableError(FormulaUnavailableError):
    """tap 中的包不存在，通常是 tap 尚未安装"""

    code = "TAP_FORMULA_UNAVAILABLE"

    def __init__(self, user: str, repo: str, name: str, dependent: str = "") -> None:
        self.user = user
        self.repo = repo
        super().__init__(f"{user}/{repo}/{name}", dependent)


# =========================================================================
# 解析阶段（变更前，致命）
# =========================================================================

class ResolutionError(CellarError):
    """依赖解析 / 安装前置条件检查失败"""

    code = "RESOLUTION_ERROR"


class FormulaAlreadyInstalledError(ResolutionError):
    code = "ALREADY_INSTALLED"


class FormulaInstallationAlreadyAttemptedError(ResolutionError):
    """同一次运行中重复安装同一个包（依赖环或重复调度）"""

    code = "ALREADY_ATTEMPTED"

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"本次运行已尝试过安装 {name}，可能存在循环依赖")


class CannotInstallFormulaError(ResolutionError):
    code = "CANNOT_INSTALL"


class DependencyCycleError(ResolutionError):
    """依赖图中存在环"""

    code = "DEPENDENCY_CYCLE"

    def __init__(self, chain: list[str]) -> None:
        self.chain = chain
        super().__init__(f"检测到循环依赖: {' -> '.join(chain)}")


class UnsatisfiedRequirementsError(ResolutionError):
    """存在未满足的致命前置条件（一次性汇总报告）"""

    code = "UNSATISFIED_REQUIREMENTS"

    def __init__(self, requirements: list[Any]) -> None:
        self.requirements = requirements
        names = ", ".join(str(r) for r in requirements)
        noun = "前置条件" if len(requirements) == 1 else f"{len(requirements)} 个前置条件"
        super().__init__(f"未满足的{noun}: {names}")


class FormulaConflictError(ResolutionError):
    """与已链接的冲突包不能共存"""

    code = "FORMULA_CONFLICT"

    def __init__(self, name: str, conflicts: list[str]) -> None:
        self.name = name
        self.conflicts = conflicts
        lines = [f"无法安装 {name}，以下已链接的包与其冲突:"]
        lines += [f"  {c}" for c in conflicts]
        lines.append("请先 unlink 冲突包，或使用 --force 跳过检查")
        super().__init__("\n".join(lines))


# =========================================================================
# 锁
# =========================================================================

class OperationInProgressError(CellarError):
    """另一个安装进程正持有该包的锁"""

    code = "OPERATION_IN_PROGRESS"

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(
            f"{name} 正在被另一个 cellarman 进程操作，请等待其结束后重试"
        )


# =========================================================================
# 构建阶段（致命，触发回滚）
# =========================================================================

class BuildError(CellarError):
    """隔离构建失败"""

    code = "BUILD_ERROR"
    kind: str = "build_error"

    def __init__(self, message: str, detail: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.detail = detail or {}


class ChildBuildError(BuildError):
    """构建子进程内部报告的失败"""

    code = "CHILD_BUILD_ERROR"
    kind = "build_failed"


class EmptyInstallationError(BuildError):
    code = "EMPTY_INSTALLATION"
    kind = "empty_installation"


class SuspiciousInstallationError(BuildError):
    """子进程非零退出但未通过管道回报任何错误"""

    code = "SUSPICIOUS_INSTALLATION"
    kind = "suspicious"


class BuildInterruptedError(BuildError):
    code = "BUILD_INTERRUPTED"
    kind = "interrupted"


# =========================================================================
# 倒瓶阶段（可恢复）
# =========================================================================

class BottleError(CellarError):
    """预编译包（bottle）获取 / 校验 / 解压失败"""

    code = "BOTTLE_ERROR"


class BottleFetchError(BottleError):
    code = "BOTTLE_FETCH_ERROR"


class ChecksumMismatchError(BottleError):
    code = "CHECKSUM_MISMATCH"

    def __init__(self, path: str, expected: str, actual: str) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"校验和不匹配 {path}: 期望 {expected}, 实际 {actual}")


class BottleStageError(BottleError):
    code = "BOTTLE_STAGE_ERROR"


# =========================================================================
# 链接阶段（安装后警告）
# =========================================================================

class LinkError(CellarError):
    """keg 链接到共享前缀失败"""

    code = "LINK_ERROR"

    def __init__(self, message: str, *, keg: str = "", src: str = "", dst: str = "") -> None:
        super().__init__(message)
        self.keg = keg
        self.src = src
        self.dst = dst


class ConflictError(LinkError):
    """目标路径已被不属于该 keg 的文件占用"""

    code = "LINK_CONFLICT"
