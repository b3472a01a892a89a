"""cellarman 日志配置

core / services 只用 logging.getLogger(__name__)；输出格式由入口决定：
  - 命令行默认: 简洁格式，进度消息原样输出，告警 / 错误带级别前缀
  - DEBUG 级别: 附带时间和 logger 名，便于排查构建问题
  - CI（CELLARMAN_LOG_JSON=1）: 每行一个 JSON 对象
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

DETAILED_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

_LEVEL_PREFIX = {
    logging.WARNING: "警告: ",
    logging.ERROR: "错误: ",
    logging.CRITICAL: "错误: ",
}


class ConsoleFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        text = _LEVEL_PREFIX.get(record.levelno, "") + record.getMessage()
        if record.exc_info:
            text += "\n" + self.formatException(record.exc_info)
        return text


class JSONFormatter(logging.Formatter):
    """一行一个 JSON 对象；extra={"formula": name} 会作为独立字段输出"""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        formula = getattr(record, "formula", None)
        if formula:
            entry["formula"] = formula
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def setup_logging(level: str = "INFO", json_output: bool = False) -> None:
    """配置根日志器，输出到 stderr；重复调用会先清掉旧 handler"""
    reset_logging()
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        numeric = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    if json_output:
        handler.setFormatter(JSONFormatter())
    elif numeric <= logging.DEBUG:
        handler.setFormatter(logging.Formatter(DETAILED_FORMAT))
    else:
        handler.setFormatter(ConsoleFormatter())

    root = logging.getLogger()
    root.setLevel(numeric)
    root.addHandler(handler)


def reset_logging() -> None:
    root = logging.getLogger()
    root.setLevel(logging.WARNING)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
