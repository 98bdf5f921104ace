"""
日志工具

库内部统一用 get_logger() 取日志器，名称都在 ylist 之下：
- ylist.orm.ordered_list: 位置引擎（DEBUG 记录每次位移与无操作，WARNING 记录回滚）
- ylist.orm.transaction: 事务与保存点
- ylist.orm.session: 引擎与会话
应用通过 setup_root_logger() 决定输出到哪里。
"""

import inspect
import logging
import os
import time
from typing import Optional, Any, Protocol, runtime_checkable


@runtime_checkable
class LoggingConfigProtocol(Protocol):
    """setup_root_logger(config=...) 读取的配置属性（LoggingSettings 满足此协议）"""
    level: str
    file_path: Optional[str]
    file_encoding: str
    enable_console: bool


class MicrosecondFormatter(logging.Formatter):
    """时间戳精确到微秒的格式化器"""

    def formatTime(self, record, datefmt=None):
        stamp = time.strftime(datefmt or "%Y-%m-%d %H:%M:%S", self.converter(record.created))
        return f"{stamp}.{int((record.created % 1) * 1_000_000):06d}"


DEFAULT_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(filename)s:%(lineno)d - %(message)s"

SQL_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"

LIST_LOGGER_NAME = "ylist.orm.ordered_list"


def _parse_level(level: str) -> int:
    """级别名转数值，未知名称按 INFO 处理"""
    return getattr(logging, str(level).upper(), logging.INFO)


def create_formatter(
    log_format: str = None,
    datefmt: str = "%Y-%m-%d %H:%M:%S",
    use_microseconds: bool = True
) -> logging.Formatter:
    fmt = log_format or DEFAULT_LOG_FORMAT
    if use_microseconds:
        return MicrosecondFormatter(fmt=fmt, datefmt=datefmt)
    return logging.Formatter(fmt, datefmt=datefmt)


def setup_logger(
    name: str = None,
    level: str = "INFO",
    log_file: str = None,
    log_format: str = None,
    console: bool = True,
    use_microseconds: bool = True,
    propagate: bool = True,
    encoding: str = "utf-8",
) -> logging.Logger:
    """配置并返回日志器（已有处理器会被替换）

    Args:
        name: 日志器名称，None 表示根日志器
        level: DEBUG / INFO / WARNING / ERROR / CRITICAL
        log_file: 日志文件路径，目录不存在时自动创建
        log_format: 日志格式，默认 DEFAULT_LOG_FORMAT
        console: 是否输出到控制台
        use_microseconds: 时间戳是否精确到微秒
        propagate: 是否传播到父日志器
        encoding: 日志文件编码

    使用示例:
        logger = setup_logger("ylist.orm", level="DEBUG", log_file="logs/list.log")
    """
    target = logging.getLogger(name)
    target.setLevel(_parse_level(level))
    target.propagate = propagate
    target.handlers.clear()

    formatter = create_formatter(log_format, use_microseconds=use_microseconds)
    handlers = []
    if console:
        handlers.append(logging.StreamHandler())
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding=encoding))

    for handler in handlers:
        handler.setFormatter(formatter)
        target.addHandler(handler)
    return target


def setup_root_logger(
    level: str = "INFO",
    log_file: str = None,
    console: bool = True,
    use_microseconds: bool = True,
    config: Any = None,
    setup_sql_logger: bool = True
) -> logging.Logger:
    """配置根日志器，ylist 的各个日志器都会传播到这里

    Args:
        level / log_file / console: 提供 config 时被 config 覆盖
        use_microseconds: 时间戳是否精确到微秒
        config: LoggingSettings；sql_log_enabled 为真时同时配置 SQL 日志器，
                设置了 list_log_level 时单独调整位置引擎日志器的级别
        setup_sql_logger: 是否按 config 配置 SQL 日志器

    使用示例:
        setup_root_logger(level="INFO", log_file="logs/app.log")
        setup_root_logger(config=settings.logging)
    """
    encoding = "utf-8"
    if config is not None:
        level = getattr(config, "level", level)
        log_file = getattr(config, "file_path", log_file)
        console = getattr(config, "enable_console", console)
        encoding = getattr(config, "file_encoding", encoding)

        if setup_sql_logger and getattr(config, "sql_log_enabled", False):
            _configure_sql_logger(config)

        list_level = getattr(config, "list_log_level", None)
        if list_level:
            setup_list_logger(list_level)

    return setup_logger(
        name=None,
        level=level,
        log_file=log_file,
        console=console,
        use_microseconds=use_microseconds,
        propagate=False,
        encoding=encoding,
    )


def _configure_sql_logger(config: Any) -> logging.Logger:
    return setup_sql_logger(
        level=getattr(config, "sql_log_level", "DEBUG"),
        log_file=getattr(config, "sql_log_file_path", None),
    )


def setup_sql_logger(
    level: str = "DEBUG",
    log_file: str = None,
    console: bool = False,
    config: Any = None,
) -> Optional[logging.Logger]:
    """配置 sqlalchemy.engine 日志器（不传播到根日志器）

    位置调整会产生大量 UPDATE 语句，排查并发问题时可打开。

    Returns:
        SQL 日志器；config.sql_log_enabled 为假时返回 None
    """
    if config is not None:
        if not getattr(config, "sql_log_enabled", True):
            return None
        level = getattr(config, "sql_log_level", level)
        log_file = getattr(config, "sql_log_file_path", log_file)

    return setup_logger(
        name="sqlalchemy.engine",
        level=level,
        log_file=log_file,
        log_format=SQL_LOG_FORMAT,
        console=console,
        propagate=False,
    )


def setup_list_logger(level: str = "DEBUG") -> logging.Logger:
    """只调整位置引擎日志器的级别，输出仍交给根日志器

    使用示例:
        setup_root_logger(level="WARNING")
        setup_list_logger("DEBUG")   # 只看每次位移
    """
    list_log = logging.getLogger(LIST_LOGGER_NAME)
    list_log.setLevel(_parse_level(level))
    return list_log


def get_logger(name: str = None) -> logging.Logger:
    """获取日志器

    Args:
        name: None 时使用调用方模块的 __name__；
              不含点号的简写自动加 "ylist." 前缀（"orm" -> "ylist.orm"）

    使用示例:
        logger = get_logger()
        logger = get_logger("orm")                 # ylist.orm
        logger = get_logger("sqlalchemy.engine")   # 原样
    """
    if name is None:
        frame = inspect.currentframe()
        caller = frame.f_back if frame is not None else None
        name = caller.f_globals.get("__name__", "ylist") if caller is not None else "ylist"
    elif name != "ylist" and "." not in name:
        name = f"ylist.{name}"
    return logging.getLogger(name)


orm_logger = get_logger("orm")
list_logger = get_logger(LIST_LOGGER_NAME)
transaction_logger = get_logger("ylist.orm.transaction")

logger = logging.getLogger("ylist")
