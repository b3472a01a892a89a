"""外部协作者的接口契约（Protocol）

安装编排器只通过这里定义的窄接口消费包描述与预编译包，
描述文件解析、下载、校验等具体实现可替换（见 cellarman.core.formula）。

使用 typing.Protocol 而非 ABC，测试中的替身对象无需继承即可满足协议。
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from cellarman.core.dependency import Dependency, Requirement
    from cellarman.core.options import Options


# =========================================================================
# 预编译包协议
# =========================================================================

class Bottle(Protocol):
    """预编译包（bottle）描述"""

    cellar: str

    @property
    def skip_relocation(self) -> bool:
        """归档内已无占位符，倒瓶后不需要重定位"""
        ...

    def compatible_cellar(self) -> bool:
        """bottle 的 cellar 布局是否与当前安装兼容"""
        ...

    def fetch(self) -> Path:
        """获取 bottle 归档到本地，返回归档路径"""
        ...

    def verify_download_integrity(self, path: Path) -> None:
        """校验归档完整性，失败抛 ChecksumMismatchError"""
        ...

    def stage(self, path: Path) -> None:
        """将归档解压到 cellar 下的 <name>/<version>/"""
        ...


# =========================================================================
# 包描述协议
# =========================================================================

class Formula(Protocol):
    """包描述（formula），安装编排器消费的全部只读信息"""

    name: str
    version: str
    path: Path                      # 描述文件路径，传给构建子进程
    active_spec: str                # stable | devel | head
    keg_only: bool
    require_universal_deps: bool
    conflicts: list[str]
    plist: str | None
    caveats: str | None

    @property
    def deps(self) -> list[Dependency]:
        """直接依赖"""
        ...

    @property
    def requirements(self) -> list[Requirement]:
        """直接前置条件"""
        ...

    @property
    def options(self) -> Options:
        """声明支持的构建选项（含可选依赖隐式声明的 with/without 选项）"""
        ...

    @property
    def bottle(self) -> Bottle | None:
        ...

    @property
    def local_bottle_path(self) -> Path | None:
        ...

    @property
    def rack(self) -> Path:
        """<cellar>/<name>"""
        ...

    @property
    def prefix(self) -> Path:
        """<cellar>/<name>/<version>，即本次安装的 keg 目录"""
        ...

    @property
    def bottle_prefix(self) -> Path:
        ...

    @property
    def opt_prefix(self) -> Path:
        ...

    @property
    def linked_keg(self) -> Path:
        """已链接 keg 记录（符号链接），存在且指向目录即为已链接"""
        ...

    @property
    def installed(self) -> bool:
        ...

    @property
    def plist_name(self) -> str:
        ...

    def option_defined(self, name: str) -> bool:
        ...

    def pour_bottle_allowed(self) -> bool:
        """包自身是否允许使用 bottle"""
        ...

    def recursive_dependencies(self) -> list[Dependency]:
        """未剪枝的全部传递依赖"""
        ...

    def post_install(self) -> None:
        """安装后钩子"""
        ...

    def installed_version(self) -> str | None:
        ...

    def to_dict(self) -> dict[str, Any]:
        ...
