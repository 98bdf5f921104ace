"""范围解析

根据模型的 ListConfig 计算"兄弟记录"的 SQL 条件以及列表的边界位置。

范围（scope）由一个或多个列的取值确定，取值相同的记录组成同一个列表。
任一范围列为 NULL 的记录自成一个只包含它自己的列表。
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import false, func, inspect as sa_inspect, select
from sqlalchemy.orm import ColumnProperty

from .list_config import ListConfig


class ScopeResolver:
    """范围解析器

    每个有序列表模型持有一个实例，由 OrderedListMixin 在首次使用时创建。

    使用示例:
        resolver = TodoItem.list_scope()
        resolver.scope_values(item)           # {"todo_list_id": 1}
        resolver.bottom_position_in_full_list(item)
    """

    def __init__(self, model_cls, config: ListConfig):
        self.model_cls = model_cls
        self.config = config

    # ==================== 列访问 ====================

    @property
    def position_column(self):
        return getattr(self.model_cls, self.config.column)

    @property
    def inverted_column(self):
        if not self.config.inverted_position:
            return None
        return getattr(self.model_cls, self.config.inverted_column)

    @property
    def primary_key(self):
        return self.model_cls.id

    @property
    def top(self) -> int:
        return self.config.top_of_list

    # ==================== 范围条件 ====================

    def scope_values(self, record) -> Dict[str, Any]:
        """记录当前的范围键取值"""
        return {name: getattr(record, name) for name in self.config.scope}

    def scope_condition(self, record, values: Optional[Dict[str, Any]] = None) -> List:
        """选出 record 兄弟记录（含自身）的条件

        Args:
            record: 列表中的记录
            values: 使用指定的范围键取值代替记录当前的取值（用于范围变更）
        """
        if values is None:
            values = self.scope_values(record)
        if any(value is None for value in values.values()):
            # 自成一个列表
            if record.id is None:
                return [false()]
            return [self.primary_key == record.id]
        return [getattr(self.model_cls, name) == value for name, value in values.items()]

    def condition_for_values(self, values: Optional[Dict[str, Any]]) -> List:
        """类级别的范围条件

        values 中为 None 的键选出该列为 NULL 的记录，这些记录各自是一个列表。
        """
        conditions = []
        for name, value in (values or {}).items():
            column = getattr(self.model_cls, name)
            if value is None:
                conditions.append(column.is_(None))
            else:
                conditions.append(column == value)
        return conditions

    # ==================== 相关性过滤 ====================

    def relevance_condition(self) -> List:
        name = self.config.relevance
        if name is None:
            return []
        attr = getattr(self.model_cls, name)
        if isinstance(sa_inspect(self.model_cls).attrs.get(name), ColumnProperty):
            return [attr.is_(True)]
        # hybrid 属性在类级别返回 SQL 表达式
        return [attr]

    def is_relevant(self, record) -> bool:
        name = self.config.relevance
        if name is None:
            return True
        return bool(getattr(record, name))

    # ==================== 范围锁 ====================

    def lock_statement(self, record):
        """锁定 record 所在范围全部行的 SELECT ... FOR UPDATE

        按主键排序加锁，多个事务锁同一范围时顺序一致。
        SQLite 不支持 FOR UPDATE，由数据库级写锁串行化。
        """
        return (
            select(self.primary_key)
            .where(*self.scope_condition(record))
            .order_by(self.primary_key)
            .with_for_update()
        )

    def lock(self, record) -> int:
        """锁定范围后再读取边界，同一范围上的操作因此串行执行

        Returns:
            被锁定的行数
        """
        session = record.session
        with session.no_autoflush:
            rows = session.execute(self.lock_statement(record)).all()
        return len(rows)

    # ==================== 边界位置 ====================

    def _bottom(self, record, except_record, relevant_only: bool) -> int:
        session = record.session
        query = session.query(func.max(self.position_column)).filter(
            *self.scope_condition(record)
        )
        if relevant_only:
            query = query.filter(*self.relevance_condition())
        if except_record is not None and except_record.id is not None:
            query = query.filter(self.primary_key != except_record.id)
        with session.no_autoflush:
            value = query.scalar()
        return self.top - 1 if value is None else value

    def bottom_position_in_full_list(self, record, except_record=None) -> int:
        """范围内最大位置（不考虑相关性），空列表返回 top - 1"""
        return self._bottom(record, except_record, relevant_only=False)

    def bottom_position_in_relevant_list(self, record, except_record=None) -> int:
        """范围内相关记录的最大位置，空列表返回 top - 1"""
        return self._bottom(record, except_record, relevant_only=True)
