"""包信息查询命令"""

from __future__ import annotations

import json

import click

from cellarman.cli import _svc, cli_errors
from cellarman.core.dependency import Dependency, ExpandAction, expand
from cellarman.core.protocols import Formula
from cellarman.core.tab import Tab


def register_commands(main: click.Group) -> None:
    """注册信息查询相关命令"""
    main.add_command(info)
    main.add_command(deps)
    main.add_command(list_formulae)


@click.command()
@click.argument("name")
@click.option("--json", "as_json", is_flag=True, help="以 JSON 输出")
def info(name: str, as_json: bool) -> None:
    """显示包描述与安装状态"""
    with cli_errors():
        formula = _svc().registry.load(name)
        data = formula.to_dict()
    if as_json:
        click.echo(json.dumps(data, ensure_ascii=False, indent=2))
        return
    click.echo(f"{formula.name}: {formula.version}" + (" (keg-only)" if formula.keg_only else ""))
    if data["dependencies"]:
        click.echo("依赖: " + ", ".join(d["name"] for d in data["dependencies"]))
    for opt in data["options"]:
        click.echo(f"  --{opt['name']:24s} {opt['description']}")
    if formula.installed:
        tab = Tab.for_formula(formula)
        source = "bottle" if tab.poured_from_bottle else "源码"
        click.echo(f"已安装: {formula.prefix} (来自{source})")
        if tab.used_options:
            click.echo("安装选项: " + " ".join(f"--{o}" for o in tab.used_options))
    else:
        click.echo("未安装")


@click.command()
@click.argument("name")
@click.option("--include-build", is_flag=True, help="包含仅构建期依赖")
@click.option("--include-optional", is_flag=True, help="包含可选依赖")
def deps(name: str, include_build: bool, include_optional: bool) -> None:
    """按安装顺序列出包的递归依赖"""

    def visit(_dependent: Formula, dep: Dependency) -> ExpandAction:
        if dep.build and not include_build:
            return ExpandAction.PRUNE
        if dep.optional and not include_optional:
            return ExpandAction.PRUNE
        return ExpandAction.CONTINUE

    with cli_errors():
        formula = _svc().registry.load(name)
        for dep in expand(formula, visit=visit):
            click.echo(dep.name)


@click.command(name="list")
def list_formulae() -> None:
    """列出可用的包及其安装状态"""
    with cli_errors():
        registry = _svc().registry
        names = registry.all_names()
        if not names:
            click.echo("没有可用的包。")
            return
        for n in names:
            f = registry.load(n)
            mark = "已安装" if f.installed else ""
            click.echo(f"  {f.name:24s} {f.version:12s} {mark}")
