"""cellarman 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
业务异常（CellarError）统一转换为一行错误提示并以状态码 1 退出。
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Iterator

import click

from cellarman import __version__
from cellarman.core.config import init_config
from cellarman.core.exceptions import CellarError
from cellarman.services.container import ServiceContainer, get_container, reset_container
from cellarman.utils.logger import setup_logging


def _svc() -> ServiceContainer:
    """获取全局服务容器的快捷方式"""
    return get_container()


@contextmanager
def cli_errors() -> Iterator[None]:
    """CellarError -> click.ClickException（输出一行错误提示，退出码 1）"""
    try:
        yield
    except CellarError as e:
        raise click.ClickException(str(e)) from e


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "config_path", default="", envvar="CELLARMAN_CONFIG",
              help="配置文件路径（YAML）")
def main(config_path: str) -> None:
    """cellarman - 源码 / 预编译包安装管理器"""
    setup_logging(
        level=os.getenv("CELLARMAN_LOG_LEVEL", "INFO"),
        json_output=os.getenv("CELLARMAN_LOG_JSON", "") == "1",
    )
    with cli_errors():
        init_config(config_path)
    reset_container()


# 注册各领域子命令
from cellarman.cli.install import register_commands as _reg_install  # noqa: E402
from cellarman.cli.keg import register_commands as _reg_keg  # noqa: E402
from cellarman.cli.info import register_commands as _reg_info  # noqa: E402

_reg_install(main)
_reg_keg(main)
_reg_info(main)
