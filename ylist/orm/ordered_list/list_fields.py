"""位置字段定义

提供标准的位置字段定义 Mixin，简化模型定义。

使用示例:
    class TodoItem(CoreModel, PositionFieldMixin, OrderedListMixin):
        __list_config__ = ListConfig(scope="todo_list_id")

        todo_list_id: Mapped[int] = mapped_column(Integer)
        # position 字段由 PositionFieldMixin 自动提供
"""

from typing import Optional

from sqlalchemy import Integer
from sqlalchemy.orm import Mapped, mapped_column


class PositionFieldMixin:
    """位置字段 Mixin

    字段说明:
        - position: 列表内位置，NULL 表示不在列表中

    需要唯一约束时不要使用此 Mixin，直接在模型上声明列和唯一索引，
    位置引擎会自动切换为逐行位移。
    """

    position: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        index=True,
        comment="列表位置"
    )


class InvertedPositionFieldMixin:
    """反向位置字段 Mixin

    字段说明:
        - inverted_position: 反向位置（inverted_offset - position），
          按它升序排列即得到倒序列表

    需要配合 ListConfig(inverted_position=True) 使用。
    """

    inverted_position: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        index=True,
        comment="反向位置"
    )


__all__ = [
    "PositionFieldMixin",
    "InvertedPositionFieldMixin",
]
