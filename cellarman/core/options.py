"""构建选项模型

Option       一个命名的布尔开关（如 with-openssl / universal）
Options      无序、去重、可合并的选项集合（保留插入顺序，输出参数时稳定）
BuildOptions 某个包实例的「有效」选项集 = 显式请求 ∪ 上次安装记录 ∪ 继承选项，
             计算后只读，供依赖剪枝判断 with / without

可选 / 推荐依赖会隐式声明 with-<name> / without-<name> 选项：
  optional:    声明 with-x，只有显式传入 --with-x 才安装
  recommended: 声明 without-x，除非显式传入 --without-x 否则安装
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Iterator


@dataclass(frozen=True)
class Option:
    """单个构建开关，按名称判等"""

    name: str
    description: str = field(default="", compare=False)

    @property
    def flag(self) -> str:
        return f"--{self.name}"

    @classmethod
    def from_flag(cls, flag: str) -> Option:
        return cls(flag.lstrip("-"))

    def __str__(self) -> str:
        return self.name


class Options:
    """选项集合（不可变；合并返回新对象）"""

    __slots__ = ("_items",)

    def __init__(self, items: Iterable[Option | str] = ()) -> None:
        ordered: dict[str, Option] = {}
        for item in items:
            opt = item if isinstance(item, Option) else Option(item)
            ordered.setdefault(opt.name, opt)
        self._items = ordered

    @classmethod
    def from_flags(cls, flags: Iterable[str]) -> Options:
        """从命令行参数构造，只接受 --xxx 形式的开关"""
        return cls(Option.from_flag(f) for f in flags if f.startswith("--"))

    def __iter__(self) -> Iterator[Option]:
        return iter(self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    def __contains__(self, item: object) -> bool:
        if isinstance(item, Option):
            return item.name in self._items
        if isinstance(item, str):
            return item in self._items
        return False

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Options):
            return NotImplemented
        return set(self._items) == set(other._items)

    def __hash__(self) -> int:
        return hash(frozenset(self._items))

    def __or__(self, other: Iterable[Option | str]) -> Options:
        return Options([*self, *Options(other)])

    def __and__(self, other: Iterable[Option | str]) -> Options:
        names = {o.name for o in Options(other)}
        return Options(o for o in self if o.name in names)

    def __sub__(self, other: Iterable[Option | str]) -> Options:
        names = {o.name for o in Options(other)}
        return Options(o for o in self if o.name not in names)

    def issubset(self, other: Iterable[Option | str]) -> bool:
        return not (self - other)

    @property
    def names(self) -> list[str]:
        return list(self._items)

    def as_flags(self) -> list[str]:
        return [o.flag for o in self]

    def __repr__(self) -> str:
        return f"Options({self.names!r})"

    def __str__(self) -> str:
        return " ".join(self.as_flags())


class BuildOptions:
    """一个包实例的有效构建选项（只读）

    args:     生效的选项集合
    declared: 包自身声明支持的选项
    """

    __slots__ = ("_args", "_declared")

    def __init__(self, args: Iterable[Option | str], declared: Iterable[Option | str]) -> None:
        self._args = Options(args)
        self._declared = Options(declared)

    @property
    def args(self) -> Options:
        return self._args

    @property
    def declared(self) -> Options:
        return self._declared

    def include(self, name: str) -> bool:
        return name in self._args

    def option_defined(self, name: str) -> bool:
        return name in self._declared

    def with_(self, item: object) -> bool:
        """item 可为带 option_name 属性的依赖 / 前置条件，或裸名称"""
        name = getattr(item, "option_name", item)
        if self.option_defined(f"with-{name}"):
            return self.include(f"with-{name}")
        if self.option_defined(f"without-{name}"):
            return not self.include(f"without-{name}")
        return False

    def without(self, item: object) -> bool:
        return not self.with_(item)

    @property
    def used_options(self) -> Options:
        return self._args & self._declared

    @property
    def unused_options(self) -> Options:
        return self._args - self._declared

    def __repr__(self) -> str:
        return f"BuildOptions(args={self._args.names!r})"
