"""构建子进程错误回传协议

子进程在出错时向管道写入一条 JSON 错误记录后以非零状态退出：

    {"kind": "build_failed", "message": "...", "detail": {...}}

父进程读到字节即反序列化为对应的 BuildError 子类抛出，
不在进程间传递任意异常对象。
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from typing import Any

from cellarman.core.exceptions import (
    BuildError,
    BuildInterruptedError,
    ChildBuildError,
    EmptyInstallationError,
    ExecutionError,
    SuspiciousInstallationError,
)

ERROR_PIPE_ENV = "CELLARMAN_ERROR_PIPE"

# 子进程因中断退出时使用的状态码
EXIT_INTERRUPTED = 130
EXIT_FAILURE = 1

_KINDS: dict[str, type[BuildError]] = {
    cls.kind: cls
    for cls in (
        ChildBuildError,
        EmptyInstallationError,
        SuspiciousInstallationError,
        BuildInterruptedError,
    )
}


@dataclass
class ErrorRecord:
    kind: str
    message: str
    detail: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_exception(cls, exc: BaseException) -> ErrorRecord:
        if isinstance(exc, KeyboardInterrupt):
            return cls(BuildInterruptedError.kind, "构建被中断")
        if isinstance(exc, BuildError):
            return cls(exc.kind, str(exc), dict(exc.detail))
        detail: dict[str, Any] = {"exception": type(exc).__name__}
        if isinstance(exc, ExecutionError):
            detail.update(cmd=exc.cmd, returncode=exc.returncode, output=exc.output)
        return cls(ChildBuildError.kind, str(exc) or type(exc).__name__, detail)

    def dumps(self) -> bytes:
        return json.dumps(asdict(self), ensure_ascii=False).encode("utf-8")

    @classmethod
    def loads(cls, raw: bytes) -> ErrorRecord:
        """反序列化；内容无法解析时仍返回一条 build_failed 记录"""
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return cls(ChildBuildError.kind, raw.decode("utf-8", errors="replace").strip())
        if not isinstance(data, dict):
            return cls(ChildBuildError.kind, str(data))
        detail = data.get("detail")
        return cls(
            str(data.get("kind", ChildBuildError.kind)),
            str(data.get("message", "")),
            detail if isinstance(detail, dict) else {},
        )

    def to_exception(self) -> BuildError:
        exc_cls = _KINDS.get(self.kind, ChildBuildError)
        return exc_cls(self.message, self.detail)
