"""下载工具

download() 先写到 <dest>.part，完成后再改名，中断的下载不会被当作缓存命中。
"""

from __future__ import annotations

import hashlib
import logging
import os
import urllib.request
from pathlib import Path
from urllib.parse import urlparse

from cellarman.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = frozenset(("http", "https"))
CHUNK_SIZE = 64 * 1024


def check_scheme(url: str, label: str = "") -> None:
    scheme = urlparse(url).scheme
    if scheme not in ALLOWED_SCHEMES:
        where = f"{label}: " if label else ""
        raise ValidationError(f"{where}不支持的下载地址 {url!r}（只接受 http/https）")


def download(url: str, dest: Path, *, label: str = "", timeout: float = 60.0) -> Path:
    """把 url 下载到 dest

    Raises:
        ValidationError: 协议不在白名单内
        OSError: 网络或写文件失败（urllib.error.URLError 是其子类）
    """
    check_scheme(url, label)
    dest.parent.mkdir(parents=True, exist_ok=True)
    part = dest.with_name(dest.name + ".part")
    logger.info("  下载: %s", url)
    try:
        with urllib.request.urlopen(url, timeout=timeout) as resp, open(part, "wb") as out:  # nosec B310
            for chunk in iter(lambda: resp.read(CHUNK_SIZE), b""):
                out.write(chunk)
        os.replace(part, dest)
    except BaseException:
        part.unlink(missing_ok=True)
        raise
    return dest


def file_sha256(path: Path) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()
