"""cellarman - 源码/二进制包管理器的安装编排器"""

__version__ = "0.4.0"
