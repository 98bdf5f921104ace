"""列表配置

每个有序列表模型通过 ``__list_config__`` 声明一个不可变的 ListConfig，
首次使用时针对映射表解析一次（检查列是否存在、推断 sequential_updates）。

使用示例:
    class TodoItem(CoreModel, PositionFieldMixin, OrderedListMixin):
        __list_config__ = ListConfig(scope="todo_list_id", add_new_at="top")
"""

import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union, Sequence

from sqlalchemy import UniqueConstraint, inspect as sa_inspect
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import ColumnProperty

from ylist.exceptions import ErrorCode, ListConfigurationError


class AddNewAt(str, Enum):
    """新记录的插入策略"""

    BOTTOM = "bottom"
    """追加到列表底部（默认）"""

    TOP = "top"
    """插入到列表顶部，原有记录依次后移"""


def _parse_add_new_at(value) -> Optional[AddNewAt]:
    if value is None or isinstance(value, AddNewAt):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        if text == "none":
            return None
        try:
            return AddNewAt(text)
        except ValueError:
            pass
    raise ListConfigurationError(
        f"未知的 add_new_at 取值: {value!r}，可选 bottom / top / None",
        code=ErrorCode.INVALID_ADD_NEW_AT,
        option="add_new_at",
    )


@dataclass(frozen=True)
class ListConfig:
    """有序列表配置

    Attributes:
        column: 位置列名
        scope: 范围列名（字符串或列名序列），空表示整张表是一个列表
        top_of_list: 第一个位置的值
        add_new_at: 新记录插入策略，None 表示不自动放入列表
        inverted_position: 是否维护反向位置列
        inverted_column: 反向位置列名
        inverted_offset: 反向位置常数 C，inverted = C - position
        sequential_updates: 是否逐行位移，None 表示根据唯一索引自动判断
        relevance: 相关性过滤使用的布尔列或 hybrid 属性名
    """

    column: str = "position"
    scope: Union[str, Sequence[str], None] = ()
    top_of_list: int = 1
    add_new_at: Union[AddNewAt, str, None] = AddNewAt.BOTTOM
    inverted_position: bool = False
    inverted_column: str = "inverted_position"
    inverted_offset: int = 0
    sequential_updates: Optional[bool] = None
    relevance: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.column, str) or not self.column:
            raise ListConfigurationError(
                "column 必须是非空字符串",
                code=ErrorCode.INVALID_COLUMN,
                option="column",
            )

        scope = self.scope
        if scope is None:
            scope = ()
        elif isinstance(scope, str):
            scope = (scope,)
        else:
            scope = tuple(scope)
        for name in scope:
            if not isinstance(name, str) or not name:
                raise ListConfigurationError(
                    f"scope 只能包含列名字符串，收到: {name!r}",
                    code=ErrorCode.INVALID_SCOPE,
                    option="scope",
                )
        if self.column in scope:
            raise ListConfigurationError(
                f"位置列 {self.column} 不能同时作为 scope 列",
                code=ErrorCode.INVALID_SCOPE,
                option="scope",
            )
        object.__setattr__(self, "scope", scope)

        object.__setattr__(self, "add_new_at", _parse_add_new_at(self.add_new_at))

        for option in ("top_of_list", "inverted_offset"):
            value = getattr(self, option)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ListConfigurationError(f"{option} 必须是整数", option=option)

        if self.inverted_position and self.inverted_column == self.column:
            raise ListConfigurationError(
                "反向位置列不能与位置列同名",
                code=ErrorCode.INVALID_COLUMN,
                option="inverted_column",
            )

    def resolve(self, model_cls) -> "ListConfig":
        """针对模型的映射表解析配置

        检查引用的列是否存在，并在 sequential_updates 为 None 时
        根据位置列上的唯一约束推断其取值。

        Returns:
            解析后的新配置（sequential_updates 一定是 bool）

        Raises:
            ListConfigurationError: 列不存在
        """
        mapper = sa_inspect(model_cls)

        def require_column(name: str, option: str, code=ErrorCode.INVALID_COLUMN):
            prop = mapper.attrs.get(name)
            if not isinstance(prop, ColumnProperty):
                raise ListConfigurationError(
                    f"{model_cls.__name__} 没有映射列 {name!r}",
                    code=code,
                    option=option,
                    model=model_cls.__name__,
                )
            return prop.columns[0]

        position_column = require_column(self.column, "column")
        for name in self.scope:
            require_column(name, "scope", code=ErrorCode.INVALID_SCOPE)
        if self.inverted_position:
            require_column(self.inverted_column, "inverted_column")

        if self.relevance is not None:
            prop = mapper.attrs.get(self.relevance)
            descriptor = mapper.all_orm_descriptors.get(self.relevance)
            if not isinstance(prop, ColumnProperty) and not isinstance(descriptor, hybrid_property):
                raise ListConfigurationError(
                    f"{model_cls.__name__}.{self.relevance} 既不是列也不是 hybrid 属性",
                    code=ErrorCode.INVALID_COLUMN,
                    option="relevance",
                    model=model_cls.__name__,
                )

        sequential = self.sequential_updates
        if sequential is None:
            sequential = _has_unique_constraint(position_column)
        return dataclasses.replace(self, sequential_updates=bool(sequential))


def _has_unique_constraint(column) -> bool:
    """位置列是否参与任何唯一索引或唯一约束"""
    if column.unique:
        return True
    table = column.table
    for index in table.indexes:
        if index.unique and column.key in index.columns:
            return True
    for constraint in table.constraints:
        if isinstance(constraint, UniqueConstraint) and column.key in constraint.columns:
            return True
    return False
