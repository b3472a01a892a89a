"""描述文件读取与原子写入

配置和包描述是 YAML，安装回执是 JSON，plist 是纯文本；
读取只接受顶层为映射的 YAML，写入一律经过 atomic_write。
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml

from cellarman.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

MAX_DESCRIPTOR_BYTES = 1024 * 1024


def atomic_write(path: Path, content: str, mode: int | None = None) -> None:
    """写到同目录临时文件再 os.replace，读者只会看到旧内容或新内容"""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        if mode is not None:
            os.chmod(tmp, mode)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


def load_yaml(path: str | Path) -> dict[str, Any]:
    """读取顶层为映射的 YAML 文件

    文件不存在或内容为空时返回空字典。

    Raises:
        ValidationError: 文件过大、语法错误或顶层不是映射
    """
    p = Path(path)
    if not p.is_file():
        return {}
    size = p.stat().st_size
    if size > MAX_DESCRIPTOR_BYTES:
        raise ValidationError(f"{p} 过大（{size} 字节）")

    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        logger.debug("YAML 解析失败: %s", p, exc_info=True)
        raise ValidationError(f"{p} 不是合法的 YAML: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError(f"{p} 顶层应为映射，实际是 {type(data).__name__}")
    return data
