"""keg 链接管理命令"""

from __future__ import annotations

import click

from cellarman.cli import _svc, cli_errors
from cellarman.core.keg import Keg, LinkMode


def register_commands(main: click.Group) -> None:
    """注册链接相关命令"""
    main.add_command(link)
    main.add_command(unlink)
    main.add_command(postinstall)


def _installed_keg(name: str) -> Keg:
    svc = _svc()
    formula = svc.registry.load(name)
    version = formula.installed_version()
    if version is None:
        raise click.ClickException(f"{name} 没有安装")
    return Keg(formula.rack / version, svc.config)


@click.command()
@click.argument("name")
@click.option("--overwrite", is_flag=True, help="删除前缀中的冲突文件")
@click.option("--dry-run", "-n", is_flag=True, help="只列出将要链接（或覆盖）的文件")
def link(name: str, overwrite: bool, dry_run: bool) -> None:
    """把已安装的 keg 链接到前缀"""
    with cli_errors():
        keg = _installed_keg(name)
        paths = keg.link(LinkMode(dry_run=dry_run, overwrite=overwrite))
        if dry_run:
            label = "将被覆盖" if overwrite else "将被链接"
            click.echo(f"{label}的文件:")
            for p in paths:
                click.echo(f"  {p}")
            return
        keg.optlink()
    click.echo(f"已链接 {keg}: {len(paths)} 个文件")


@click.command()
@click.argument("name")
def unlink(name: str) -> None:
    """取消 keg 在前缀中的链接"""
    with cli_errors():
        keg = _installed_keg(name)
        removed = keg.unlink()
    click.echo(f"已取消链接 {keg}: {removed} 个文件")


@click.command()
@click.argument("name")
def postinstall(name: str) -> None:
    """重新执行包的 post_install 步骤"""
    with cli_errors():
        formula = _svc().registry.load(name)
        if not formula.installed:
            raise click.ClickException(f"{name} 没有安装")
        formula.post_install()
    click.echo(f"{name}: post_install 完成")
