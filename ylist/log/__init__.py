"""日志模块

提供日志配置与获取工具：
- get_logger: 获取（自动推断名称的）日志记录器
- setup_logger / setup_root_logger: 配置日志输出
- setup_sql_logger: 打开 SQLAlchemy 语句日志
- setup_list_logger: 单独调整位置引擎日志的级别

使用示例:
    from ylist.log import setup_root_logger, get_logger

    setup_root_logger(level="DEBUG", log_file="logs/app.log")
    logger = get_logger()
"""

from .logger import (
    LoggingConfigProtocol,
    setup_logger,
    setup_root_logger,
    setup_sql_logger,
    setup_list_logger,
    create_formatter,
    MicrosecondFormatter,
    DEFAULT_LOG_FORMAT,
    SQL_LOG_FORMAT,
    LIST_LOGGER_NAME,
    orm_logger,
    list_logger,
    transaction_logger,
    logger,
    get_logger,
)

__all__ = [
    "LoggingConfigProtocol",
    "setup_logger",
    "setup_root_logger",
    "setup_sql_logger",
    "setup_list_logger",
    "create_formatter",
    "MicrosecondFormatter",
    "DEFAULT_LOG_FORMAT",
    "SQL_LOG_FORMAT",
    "LIST_LOGGER_NAME",
    "orm_logger",
    "list_logger",
    "transaction_logger",
    "logger",
    "get_logger",
]
