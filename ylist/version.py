"""版本信息"""

__version__ = "0.1.0"
__author__ = "ylist contributors"
__description__ = "SQLAlchemy 有序列表位置管理"
