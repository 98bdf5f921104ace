"""有序列表模块

为模型维护范围内连续无间隙的位置。

导出:
    - ListConfig / AddNewAt: 列表配置
    - PositionFieldMixin / InvertedPositionFieldMixin: 位置字段 Mixin
    - OrderedListMixin: 位置引擎（移动、插入、删除时自动维护位置）
    - ScopeResolver: 范围解析
    - check_list_consistency / repair_list_consistency / normalize_list_positions: 一致性检查与修复

使用示例:
    from ylist.orm import CoreModel
    from ylist.orm.ordered_list import ListConfig, OrderedListMixin, PositionFieldMixin

    class TodoItem(CoreModel, PositionFieldMixin, OrderedListMixin):
        __list_config__ = ListConfig(scope="todo_list_id", add_new_at="top")

        todo_list_id: Mapped[int] = mapped_column(Integer)

    item = TodoItem.get(1)
    item.move_lower()
    item.move_to_bottom()
"""

from .list_config import AddNewAt, ListConfig
from .list_fields import PositionFieldMixin, InvertedPositionFieldMixin
from .scope import ScopeResolver
from .list_mixin import OrderedListMixin
from .consistency import (
    GAP,
    DUPLICATE,
    INVERTED_MISMATCH,
    ScopeViolation,
    ConsistencyReport,
    check_list_consistency,
    repair_list_consistency,
    normalize_list_positions,
)

__all__ = [
    "AddNewAt",
    "ListConfig",
    "PositionFieldMixin",
    "InvertedPositionFieldMixin",
    "ScopeResolver",
    "OrderedListMixin",
    "GAP",
    "DUPLICATE",
    "INVERTED_MISMATCH",
    "ScopeViolation",
    "ConsistencyReport",
    "check_list_consistency",
    "repair_list_consistency",
    "normalize_list_positions",
]
