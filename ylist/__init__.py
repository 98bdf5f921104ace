"""
ylist - SQLAlchemy 有序列表位置管理

为 SQLAlchemy 模型维护范围内连续无间隙的整数位置，
并提供配置、日志、异常、会话与事务管理等配套设施。
"""

from .version import __version__, __author__, __description__

# 导出ORM
from .orm import (
    Base,
    CoreModel,
    init_database,
    get_engine,
    db_session_scope,
    with_db_session,
    close_database,
    transaction_manager,
    transaction_with_retry,
    AddNewAt,
    ListConfig,
    PositionFieldMixin,
    InvertedPositionFieldMixin,
    OrderedListMixin,
    check_list_consistency,
    repair_list_consistency,
)

# 导出异常
from .exceptions import (
    Err,
    ErrorCode,
    ListException,
    ListConfigurationError,
    ListScopeError,
    DatabaseNotInitializedError,
)

# 导出日志
from .log import get_logger, setup_root_logger

# 导出配置
from .config import AppSettings, load_yaml_config

__all__ = [
    "__version__",
    "__author__",
    "__description__",

    # ORM
    "Base",
    "CoreModel",
    "init_database",
    "get_engine",
    "db_session_scope",
    "with_db_session",
    "close_database",
    "transaction_manager",
    "transaction_with_retry",
    "AddNewAt",
    "ListConfig",
    "PositionFieldMixin",
    "InvertedPositionFieldMixin",
    "OrderedListMixin",
    "check_list_consistency",
    "repair_list_consistency",

    # 异常
    "Err",
    "ErrorCode",
    "ListException",
    "ListConfigurationError",
    "ListScopeError",
    "DatabaseNotInitializedError",

    # 日志
    "get_logger",
    "setup_root_logger",

    # 配置
    "AppSettings",
    "load_yaml_config",
]
