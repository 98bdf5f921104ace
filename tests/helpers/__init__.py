"""测试辅助工具模块

提供测试专用的模型与辅助函数，避免在核心代码中添加测试专用方法。
"""

from .transaction_helpers import reset_transaction_manager
from .list_helpers import titles_in_order, positions_by_title

__all__ = [
    # 事务管理器辅助
    'reset_transaction_manager',
    # 有序列表辅助
    'titles_in_order',
    'positions_by_title',
]
