"""安装命令"""

from __future__ import annotations

import json
import sys

import click

from cellarman.cli import _svc, cli_errors
from cellarman.core.options import Options
from cellarman.services.installer import FormulaInstaller, InstallerMode


def register_commands(main: click.Group) -> None:
    """注册安装相关命令"""
    main.add_command(install)


@click.command()
@click.argument("names", nargs=-1, required=True)
@click.option("--with", "with_", multiple=True, metavar="OPTION",
              help="启用构建选项（可多次指定，如 --with openssl 即 with-openssl）")
@click.option("--option", "raw_options", multiple=True, metavar="NAME",
              help="原样传入的构建选项名（如 universal）")
@click.option("--build-from-source", "-s", is_flag=True, help="始终从源码构建")
@click.option("--force-bottle", is_flag=True, help="即使带选项也强制使用 bottle")
@click.option("--build-bottle", is_flag=True, help="构建可打包为 bottle 的产物")
@click.option("--bottle-arch", default="", help="--build-bottle 的目标架构")
@click.option("--ignore-dependencies", is_flag=True, help="不安装依赖")
@click.option("--only-dependencies", is_flag=True, help="只安装依赖，不安装包本身")
@click.option("--interactive", "-i", is_flag=True, help="在构建目录中打开交互式 shell")
@click.option("--verbose", "-v", is_flag=True, help="输出构建过程详情")
@click.option("--debug", "-d", is_flag=True, help="出错时输出完整堆栈")
@click.option("--force", "-f", is_flag=True, help="跳过冲突包检查")
@click.option("--devel", "spec", flag_value="devel", help="安装 devel 版本")
@click.option("--HEAD", "spec", flag_value="head", help="安装 HEAD 版本")
@click.option("--json", "as_json", is_flag=True, help="以 JSON 输出安装报告")
def install(
    names: tuple[str, ...], with_: tuple[str, ...], raw_options: tuple[str, ...],
    build_from_source: bool, force_bottle: bool, build_bottle: bool, bottle_arch: str,
    ignore_dependencies: bool, only_dependencies: bool, interactive: bool,
    verbose: bool, debug: bool, force: bool, spec: str | None, as_json: bool,
) -> None:
    """安装一个或多个包"""
    svc = _svc()
    mode = InstallerMode(
        ignore_deps=ignore_dependencies,
        only_deps=only_dependencies,
        build_from_source=build_from_source,
        build_bottle=build_bottle,
        force_bottle=force_bottle,
        interactive=interactive,
        verbose=verbose,
        debug=debug,
        force=force,
        show_header=len(names) > 1,
        bottle_arch=bottle_arch,
    )
    options = Options([f"with-{w}" for w in with_] + list(raw_options))

    for name in names:
        with cli_errors():
            formula = svc.registry.load(name, spec or "stable")
            report = FormulaInstaller(formula, mode=mode, options=options, container=svc).run()
        if as_json:
            click.echo(json.dumps(report.to_dict(), ensure_ascii=False, indent=2))
            continue
        if report.summary:
            click.echo(report.summary)
        if report.caveats:
            click.echo(report.caveats)
        for warning in report.warnings:
            click.echo(f"警告: {warning}", err=True)

    if svc.context.failed:
        sys.exit(1)
