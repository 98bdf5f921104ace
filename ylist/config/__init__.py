"""配置模块

提供配置管理功能：
- AppSettings: 应用基础配置，支持 YAML + 环境变量
- 子配置类: DatabaseSettings, LoggingSettings
- ConfigLoader / load_yaml_config: YAML 配置加载

快速开始:
    from ylist.config import AppSettings, load_yaml_config
    from ylist.orm import init_database
    from ylist.log import setup_root_logger

    settings = load_yaml_config("config/settings.yaml", AppSettings)
    setup_root_logger(config=settings.logging)
    init_database(config=settings.database, logging_config=settings.logging)

列表行为本身（列名、范围、插入位置等）不走全局配置，
而是在每个模型上通过 ListConfig 声明。
"""

from .settings import (
    AppSettings,
    DatabaseSettings,
    LoggingSettings,
)

from .loader import (
    ConfigLoader,
    load_yaml_config,
)

__all__ = [
    "AppSettings",
    "DatabaseSettings",
    "LoggingSettings",
    "ConfigLoader",
    "load_yaml_config",
]
