"""日志配置测试"""

import json
import logging

from cellarman.utils.logger import ConsoleFormatter, JSONFormatter, setup_logging


def _record(level: int, msg: str, **extra) -> logging.LogRecord:  # noqa: ANN003
    record = logging.LogRecord("cellarman.test", level, __file__, 1, msg, (), None)
    record.__dict__.update(extra)
    return record


class TestFormatters:
    def test_console_prefixes(self) -> None:
        fmt = ConsoleFormatter()
        assert fmt.format(_record(logging.INFO, "安装 foo")) == "安装 foo"
        assert fmt.format(_record(logging.WARNING, "没有安装任何内容")) == "警告: 没有安装任何内容"
        assert fmt.format(_record(logging.ERROR, "链接失败")) == "错误: 链接失败"

    def test_json_formula_field(self) -> None:
        entry = json.loads(JSONFormatter().format(_record(logging.INFO, "安装 foo", formula="foo")))
        assert entry["level"] == "info"
        assert entry["message"] == "安装 foo"
        assert entry["formula"] == "foo"

    def test_json_without_formula(self) -> None:
        entry = json.loads(JSONFormatter().format(_record(logging.WARNING, "x")))
        assert "formula" not in entry


class TestSetupLogging:
    def test_single_handler(self, sandbox) -> None:
        setup_logging("WARNING")
        setup_logging("WARNING")
        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert root.level == logging.WARNING
        assert isinstance(root.handlers[0].formatter, ConsoleFormatter)

    def test_json_and_debug_formats(self, sandbox) -> None:
        setup_logging("INFO", json_output=True)
        assert isinstance(logging.getLogger().handlers[0].formatter, JSONFormatter)
        setup_logging("debug")
        formatter = logging.getLogger().handlers[0].formatter
        assert not isinstance(formatter, (ConsoleFormatter, JSONFormatter))

    def test_unknown_level_falls_back_to_info(self, sandbox) -> None:
        setup_logging("LOUD")
        assert logging.getLogger().level == logging.INFO
