"""有序列表 Mixin（位置引擎）

为模型维护一个从 top_of_list 开始、连续无间隙的整数位置。
所有调整都通过有界的批量 UPDATE（position = position ± 1）完成，
每个操作在一个保存点内执行：先锁定所在范围（SELECT ... FOR UPDATE），
再位移兄弟记录，最后写入自身位置。

使用示例:
    from ylist.orm import CoreModel
    from ylist.orm.ordered_list import (
        ListConfig, OrderedListMixin, PositionFieldMixin,
    )

    class TodoItem(CoreModel, PositionFieldMixin, OrderedListMixin):
        __list_config__ = ListConfig(scope="todo_list_id")

        todo_list_id: Mapped[int] = mapped_column(Integer)
        title: Mapped[str] = mapped_column(String(100))

    item = TodoItem(todo_list_id=1, title="write report")
    item.save()             # 追加到列表底部
    item.move_to_top()      # 置顶，其余记录依次后移
    item.insert_at(3)       # 移动到第 3 位
    item.delete()           # 删除并收紧后面的位置

    # 直接修改位置也会交给引擎处理
    item.position = 1
    item.save()             # 等价于 item.move_to(1)
"""

from contextlib import contextmanager
from typing import Any, ClassVar, Dict, List, NamedTuple, Optional

from sqlalchemy import inspect as sa_inspect, update

from ylist.exceptions import Err
from ylist.log import get_logger

from ..transaction import transaction_manager
from .list_config import AddNewAt, ListConfig
from .scope import ScopeResolver

logger = get_logger("ylist.orm.ordered_list")


class PendingChange(NamedTuple):
    """尚未保存的位置 / 范围修改"""
    requested: Optional[int]
    new_scope: Dict[str, Any]
    position_changed: bool
    scope_changed: bool


class OrderedListMixin:
    """有序列表 Mixin

    配置（子类覆盖）:
        __list_config__ = ListConfig(...)

    字段要求（使用者需定义或使用 PositionFieldMixin）:
        - position: Optional[int]，列名可通过 ListConfig.column 修改
        - inverted_position: 启用 inverted_position 时需要

    生命周期回调（由 CoreModel.save()/delete() 调用）:
        - before_create: 按 add_new_at 策略或显式位置放入列表
        - before_update: 处理范围变更与直接修改位置
        - before_destroy: 删除前收紧后面的位置

    所有移动方法在发生变化时返回 True，无操作时返回 False。
    """

    __list_config__: ClassVar[ListConfig] = ListConfig()

    # ==================== 配置 ====================

    @classmethod
    def list_scope(cls) -> ScopeResolver:
        """获取本模型的范围解析器（首次调用时解析配置）"""
        resolver = cls.__dict__.get("_list_scope_resolver")
        if resolver is None:
            config = cls.__list_config__.resolve(cls)
            resolver = ScopeResolver(cls, config)
            cls._list_scope_resolver = resolver
            logger.debug(f"{cls.__name__}: 列表配置已解析 {config}")
        return resolver

    @classmethod
    def resolve_list_config(cls) -> ListConfig:
        """获取解析后的列表配置"""
        return cls.list_scope().config

    @property
    def has_inverted_position(self) -> bool:
        return self.resolve_list_config().inverted_position

    # ==================== 内部：位置读写 ====================

    def _get_position(self) -> Optional[int]:
        return getattr(self, self.resolve_list_config().column)

    def _write_position(self, value: Optional[int]) -> None:
        """写入自身位置，反向位置同步写入"""
        config = self.resolve_list_config()
        setattr(self, config.column, value)
        if config.inverted_position:
            setattr(
                self,
                config.inverted_column,
                None if value is None else config.inverted_offset - value,
            )

    def _managed_attributes(self) -> List[str]:
        config = self.resolve_list_config()
        names = [config.column, *config.scope]
        if config.inverted_position:
            names.append(config.inverted_column)
        return names

    def _require_persistent(self) -> None:
        """已 save() 但尚未 flush 的记录先 flush；未保存或已分离的记录抛出异常"""
        state = sa_inspect(self)
        if state.pending:
            self.session.flush()
        elif not state.persistent:
            raise Err.not_persisted(model=self.__class__.__name__)

    def _lock_scope(self, *others) -> None:
        """锁定所在范围，并重新读取自身（及 others）在数据库中的位置与范围

        读取边界之前必须先加锁；锁住之后其他事务已提交的位移对本事务可见。
        """
        self.list_scope().lock(self)
        for record in (self, *others):
            if sa_inspect(record).persistent:
                record.session.refresh(record, attribute_names=record._managed_attributes())

    @contextmanager
    def _list_transaction(self, operation: str, *others):
        """在保存点内执行列表操作

        进入保存点后先锁定范围；失败时回滚保存点，恢复自身（及 others）的位置与范围取值，
        记录警告后原样抛出异常。
        """
        session = self.session
        names = self._managed_attributes()
        with session.no_autoflush:
            snapshot = {name: getattr(self, name) for name in names}
        try:
            with transaction_manager.savepoint(session, f"list_{operation}"):
                self._lock_scope(*others)
                yield
        except Exception as e:
            if sa_inspect(self).persistent:
                # 重新读取数据库中操作前的取值
                session.expire(self, names)
            else:
                for name, value in snapshot.items():
                    setattr(self, name, value)
            for record in others:
                if sa_inspect(record).persistent:
                    session.expire(record, record._managed_attributes())
            logger.warning(
                f"{self.__class__.__name__}(id={self.id}) {operation} 失败，已回滚: "
                f"{type(e).__name__}: {e}"
            )
            raise

    # ==================== 内部：批量位移 ====================

    def _shift_condition(self, lower: Optional[int], upper: Optional[int],
                         scope_values: Optional[Dict[str, Any]] = None) -> List:
        resolver = self.list_scope()
        column = resolver.position_column
        conditions = [
            *resolver.scope_condition(self, scope_values),
            *resolver.relevance_condition(),
            column.isnot(None),
        ]
        if lower is not None:
            conditions.append(column >= lower)
        if upper is not None:
            conditions.append(column <= upper)
        if self.id is not None:
            conditions.append(resolver.primary_key != self.id)
        return conditions

    def _shift_values(self, delta: int) -> Dict:
        resolver = self.list_scope()
        values = {resolver.position_column: resolver.position_column + delta}
        if resolver.inverted_column is not None:
            values[resolver.inverted_column] = resolver.inverted_column - delta
        return values

    def _shift_positions(self, delta: int, lower: Optional[int] = None,
                         upper: Optional[int] = None) -> int:
        """把 [lower, upper] 范围内的兄弟记录整体移动 delta

        始终排除自身；启用 sequential_updates 时逐行更新，
        增加时从大到小、减少时从小到大，保证任一时刻位置不重复。

        Returns:
            受影响的行数
        """
        resolver = self.list_scope()
        cls = self.__class__
        session = self.session
        conditions = self._shift_condition(lower, upper)
        values = self._shift_values(delta)

        with session.no_autoflush:
            if not resolver.config.sequential_updates:
                stmt = (
                    update(cls)
                    .where(*conditions)
                    .values(values)
                    .execution_options(synchronize_session="auto")
                )
                count = session.execute(stmt).rowcount
            else:
                column = resolver.position_column
                order = column.desc() if delta > 0 else column.asc()
                ids = [
                    row_id for (row_id,) in
                    session.query(resolver.primary_key).filter(*conditions).order_by(order)
                ]
                for row_id in ids:
                    stmt = (
                        update(cls)
                        .where(resolver.primary_key == row_id)
                        .values(values)
                        .execution_options(synchronize_session="auto")
                    )
                    session.execute(stmt)
                count = len(ids)

        logger.debug(
            f"{cls.__name__}(id={self.id}): 位移 {delta:+d} 区间 [{lower}, {upper}] 影响 {count} 行"
        )
        return count

    def _update_row(self, record, value: Optional[int]) -> None:
        """直接用 UPDATE 写入某条已持久化记录的位置"""
        resolver = self.list_scope()
        config = resolver.config
        values = {resolver.position_column: value}
        if config.inverted_position:
            values[resolver.inverted_column] = (
                None if value is None else config.inverted_offset - value
            )
        stmt = (
            update(record.__class__)
            .where(resolver.primary_key == record.id)
            .values(values)
            .execution_options(synchronize_session="auto")
        )
        session = self.session
        with session.no_autoflush:
            session.execute(stmt)

    def _park(self) -> None:
        """逐行模式下先把自身位置置空，腾出它占用的位置"""
        if not self.resolve_list_config().sequential_updates:
            return
        if self.id is None or self._get_position() is None:
            return
        self._update_row(self, None)

    # ==================== 内部：操作实现 ====================

    def _add_to_list_bottom(self) -> bool:
        if self.in_list():
            return self._move_to_bottom()
        resolver = self.list_scope()
        bottom = resolver.bottom_position_in_full_list(self, except_record=self)
        self._write_position(bottom + 1)
        return True

    def _add_to_list_top(self) -> bool:
        if self.in_list():
            return self._move_to_top()
        top = self.resolve_list_config().top_of_list
        self._shift_positions(+1, lower=top)
        self._write_position(top)
        return True

    def _insert_at(self, position: int) -> bool:
        if self.in_list():
            return self._move_to(position)
        if not self.is_relevant():
            return False
        resolver = self.list_scope()
        bottom = resolver.bottom_position_in_relevant_list(self, except_record=self)
        target = min(max(position, resolver.top), bottom + 1)
        self._shift_positions(+1, lower=target)
        self._write_position(target)
        return True

    def _move_to(self, position: int) -> bool:
        if not self.is_relevant():
            return False
        old = self._get_position()
        if old is None:
            return self._insert_at(position)
        resolver = self.list_scope()
        bottom = max(resolver.bottom_position_in_relevant_list(self), old)
        target = min(max(position, resolver.top), bottom)
        if target == old:
            logger.debug(f"{self.__class__.__name__}(id={self.id}): 已在位置 {old}")
            return False
        self._park()
        if target < old:
            self._shift_positions(+1, lower=target, upper=old - 1)
        else:
            self._shift_positions(-1, lower=old + 1, upper=target)
        self._write_position(target)
        return True

    def _move_to_top(self) -> bool:
        if self.not_in_list():
            return False
        return self._move_to(self.resolve_list_config().top_of_list)

    def _move_to_bottom(self) -> bool:
        if self.not_in_list() or not self.is_relevant():
            return False
        bottom = self.list_scope().bottom_position_in_relevant_list(self)
        return self._move_to(bottom)

    def _remove_from_list(self) -> bool:
        old = self._get_position()
        if old is None:
            return False
        if self.is_relevant():
            self._park()
            self._shift_positions(-1, lower=old + 1)
        self._write_position(None)
        return True

    def _place_new(self, requested: Optional[int]) -> None:
        """按显式位置或 add_new_at 策略放入列表（自身当前不在列表中）"""
        config = self.resolve_list_config()
        resolver = self.list_scope()
        if not self.is_relevant():
            bottom = resolver.bottom_position_in_full_list(self, except_record=self)
            self._write_position(bottom + 1)
        elif requested is not None:
            self._insert_at(requested)
        elif config.add_new_at is AddNewAt.TOP:
            self._add_to_list_top()
        elif config.add_new_at is AddNewAt.BOTTOM:
            self._add_to_list_bottom()
        else:
            self._write_position(None)

    def _committed_values(self, names: List[str]) -> Dict[str, Any]:
        """读取属性在本次修改之前的取值

        优先使用属性历史；修改前未加载的属性从数据库读取
        """
        state = sa_inspect(self)
        result = {}
        missing = []
        for name in names:
            history = state.attrs[name].history
            if not history.has_changes():
                result[name] = getattr(self, name)
            elif history.deleted:
                result[name] = history.deleted[0]
            else:
                missing.append(name)
        if missing:
            cls = self.__class__
            session = self.session
            with session.no_autoflush:
                row = session.query(*[getattr(cls, name) for name in missing]).filter(
                    self.list_scope().primary_key == self.id
                ).one()
            result.update(zip(missing, row))
        return result

    def _take_pending_changes(self) -> Optional[PendingChange]:
        """取出尚未保存的位置与范围修改，并把属性恢复为修改前的取值

        保存点开启时会 flush，请求的位置不能提前落库。

        Returns:
            PendingChange；没有修改时返回 None
        """
        config = self.resolve_list_config()
        committed = self._committed_values([config.column, *config.scope])

        old_position = committed[config.column]
        requested = self._get_position()
        old_scope = {name: committed[name] for name in config.scope}
        new_scope = self.list_scope().scope_values(self)
        change = PendingChange(
            requested=requested,
            new_scope=new_scope,
            position_changed=requested != old_position,
            scope_changed=old_scope != new_scope,
        )
        if not change.position_changed and not change.scope_changed:
            return None

        for name, value in old_scope.items():
            setattr(self, name, value)
        self._write_position(old_position)
        return change

    def _apply_pending_changes(self, change: PendingChange) -> None:
        """在保存点内应用 _take_pending_changes() 取出的修改

        - 范围变更：在原范围收紧位置，锁定新范围后放入
        - 直接修改了位置：交给 move_to / remove_from_list
        """
        if change.scope_changed:
            old_scope = self.list_scope().scope_values(self)
            self._remove_from_list()
            for name, value in change.new_scope.items():
                setattr(self, name, value)
            self.list_scope().lock(self)
            logger.debug(
                f"{self.__class__.__name__}(id={self.id}): 范围 {old_scope} -> {change.new_scope}"
            )
            self._place_new(change.requested if change.position_changed else None)
        elif change.requested is None:
            self._remove_from_list()
        else:
            self._move_to(change.requested)

    @contextmanager
    def _list_operation(self, operation: str):
        """公开操作的入口：未保存的位置 / 范围修改与操作本身在同一个保存点内完成"""
        self._require_persistent()
        change = self._take_pending_changes()
        with self._list_transaction(operation):
            if change is not None:
                self._apply_pending_changes(change)
            yield

    # ==================== 公开操作 ====================

    def add_to_list_bottom(self) -> bool:
        """放到列表底部（按完整列表的底部计算，不位移其他记录）"""
        with self._list_operation("add_to_list_bottom"):
            return self._add_to_list_bottom()

    def add_to_list_top(self) -> bool:
        """放到列表顶部，其余相关记录依次后移"""
        with self._list_operation("add_to_list_top"):
            return self._add_to_list_top()

    def insert_at(self, position: int) -> bool:
        """插入到指定位置

        位置超出范围时截断到 [top, 底部 + 1]；已在列表中的记录等同于 move_to()。
        """
        with self._list_operation("insert_at"):
            return self._insert_at(position)

    def move_to(self, position: int) -> bool:
        """移动到指定位置

        位置超出范围时截断到 [top, 底部]；不在列表中的记录改为插入。
        尚未保存的位置或范围修改会先生效，再执行本次移动。

        Example:
            item.move_to(3)
            session.commit()
        """
        with self._list_operation("move_to"):
            return self._move_to(position)

    def move_higher(self) -> bool:
        """上移一位（位置减一），已在顶部返回 False"""
        with self._list_operation("move_higher"):
            if self.not_in_list():
                return False
            return self._move_to(self._get_position() - 1)

    def move_lower(self) -> bool:
        """下移一位（位置加一），已在底部返回 False"""
        with self._list_operation("move_lower"):
            if self.not_in_list():
                return False
            return self._move_to(self._get_position() + 1)

    move_up = move_higher
    move_down = move_lower

    def move_to_top(self) -> bool:
        """置顶"""
        with self._list_operation("move_to_top"):
            return self._move_to_top()

    def move_to_bottom(self) -> bool:
        """置底"""
        with self._list_operation("move_to_bottom"):
            return self._move_to_bottom()

    def swap_with(self, other: "OrderedListMixin") -> bool:
        """与同一列表中的另一条记录交换位置

        Raises:
            ListScopeError: 两条记录不在同一个列表中
        """
        self._require_persistent()
        if other is None or other is self:
            return False
        other._require_persistent()

        resolver = self.list_scope()
        mine = resolver.scope_values(self)
        if (
            getattr(other, "__table__", None) is not self.__table__
            or resolver.scope_values(other) != mine
            or any(value is None for value in mine.values())
        ):
            raise Err.scope(
                "不能与其他列表中的记录交换位置",
                model=self.__class__.__name__,
                record_id=self.id,
                other_id=other.id,
            )

        changes = [(self, self._take_pending_changes()), (other, other._take_pending_changes())]
        with self._list_transaction("swap_with", other):
            for record, change in changes:
                if change is not None:
                    record._apply_pending_changes(change)

            a, b = self._get_position(), other._get_position()
            if a is None or b is None or a == b:
                return False
            if not (self.is_relevant() and other.is_relevant()):
                return False

            if self.resolve_list_config().sequential_updates:
                self._park()
                self._update_row(other, a)
            else:
                other._write_position(a)
            self._write_position(b)
        return True

    def remove_from_list(self) -> bool:
        """移出列表（位置置空），后面的记录依次前移"""
        with self._list_operation("remove_from_list"):
            return self._remove_from_list()

    # ==================== 位移原语 ====================

    def increment_positions_on_lower_items(self, position: int) -> int:
        """位置 >= position 的兄弟记录加一"""
        return self._shift_positions(+1, lower=position)

    def decrement_positions_on_lower_items(self, position: Optional[int] = None) -> int:
        """位置 > position（默认自身位置）的兄弟记录减一"""
        if position is None:
            position = self._get_position()
        if position is None:
            return 0
        return self._shift_positions(-1, lower=position + 1)

    def increment_positions_on_higher_items(self) -> int:
        """位置 < 自身位置的兄弟记录加一"""
        position = self._get_position()
        if position is None:
            return 0
        return self._shift_positions(+1, upper=position - 1)

    def decrement_positions_on_higher_items(self, position: int) -> int:
        """位置 <= position 的兄弟记录减一"""
        return self._shift_positions(-1, upper=position)

    def increment_positions_on_all_items(self) -> int:
        """所有兄弟记录加一"""
        return self._shift_positions(+1)

    # ==================== 生命周期回调 ====================

    def before_create(self) -> None:
        """新记录保存前：显式位置走 insert_at，否则按 add_new_at 策略放置"""
        requested = self._get_position()
        with self._list_transaction("before_create"):
            self._write_position(None)
            self._place_new(requested)

    def before_update(self) -> None:
        """已持久化记录保存前

        - 范围变更：在原范围收紧位置，再放入新范围
        - 直接修改了位置：恢复原值后交给 move_to / insert_at / remove_from_list
        """
        change = self._take_pending_changes()
        if change is None:
            return
        with self._list_transaction("before_update"):
            self._apply_pending_changes(change)

    def before_destroy(self) -> None:
        """删除前收紧后面的位置；不在列表中或不相关的记录不处理"""
        config = self.resolve_list_config()
        committed = self._committed_values([config.column, *config.scope])
        if committed[config.column] is None:
            return
        for name, value in committed.items():
            if name != config.column:
                setattr(self, name, value)
        self._write_position(committed[config.column])
        if not self.is_relevant():
            return
        with self._list_transaction("before_destroy"):
            self._remove_from_list()

    # ==================== 查询 ====================

    def in_list(self) -> bool:
        return self._get_position() is not None

    def not_in_list(self) -> bool:
        return self._get_position() is None

    def is_relevant(self) -> bool:
        """是否满足相关性过滤（未配置时总是 True）"""
        return self.list_scope().is_relevant(self)

    def current_position(self) -> Optional[int]:
        return self._get_position()

    def bottom_position_in_list(self, except_record=None) -> int:
        """列表中相关记录的最大位置，空列表返回 top - 1"""
        return self.list_scope().bottom_position_in_relevant_list(self, except_record)

    def _siblings_query(self):
        resolver = self.list_scope()
        return self.session.query(self.__class__).filter(
            *resolver.scope_condition(self),
            *resolver.relevance_condition(),
            resolver.position_column.isnot(None),
        )

    def higher_items(self, limit: Optional[int] = None) -> list:
        """位置在自身之前的记录，离自身最近的在前"""
        position = self._get_position()
        if position is None:
            return []
        resolver = self.list_scope()
        column = resolver.position_column
        query = self._siblings_query().filter(column < position).order_by(
            column.desc(), resolver.primary_key.desc()
        )
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def lower_items(self, limit: Optional[int] = None) -> list:
        """位置在自身之后的记录，离自身最近的在前"""
        position = self._get_position()
        if position is None:
            return []
        resolver = self.list_scope()
        column = resolver.position_column
        query = self._siblings_query().filter(column > position).order_by(
            column.asc(), resolver.primary_key.asc()
        )
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def higher_item(self):
        items = self.higher_items(limit=1)
        return items[0] if items else None

    def lower_item(self):
        items = self.lower_items(limit=1)
        return items[0] if items else None

    def first_item(self):
        """列表中的第一条记录"""
        resolver = self.list_scope()
        return self._siblings_query().order_by(
            resolver.position_column.asc(), resolver.primary_key.asc()
        ).first()

    def last_item(self):
        """列表中的最后一条记录"""
        resolver = self.list_scope()
        return self._siblings_query().order_by(
            resolver.position_column.desc(), resolver.primary_key.desc()
        ).first()

    def is_first(self) -> bool:
        return self.in_list() and self._get_position() == self.resolve_list_config().top_of_list

    def is_last(self) -> bool:
        return self.in_list() and self._get_position() == self.bottom_position_in_list()

    # ==================== 类方法 ====================

    @classmethod
    def get_list(cls, scope_values: Optional[Dict[str, Any]] = None, desc: bool = False) -> list:
        """按位置顺序返回一个列表中的记录

        Args:
            scope_values: 范围键取值，如 {"todo_list_id": 1}；无范围时可省略
            desc: 是否倒序

        Example:
            items = TodoItem.get_list({"todo_list_id": 1})
        """
        resolver = cls.list_scope()
        column = resolver.position_column
        order = (
            (column.desc(), resolver.primary_key.desc())
            if desc else (column.asc(), resolver.primary_key.asc())
        )
        return cls.query.filter(
            *resolver.condition_for_values(scope_values),
            *resolver.relevance_condition(),
            column.isnot(None),
        ).order_by(*order).all()

    @classmethod
    def normalize_positions(cls, scope_values: Optional[Dict[str, Any]] = None) -> int:
        """重新编号，消除间隙与重复

        Args:
            scope_values: 只处理指定范围，None 表示处理所有范围

        Returns:
            被改写的记录数
        """
        from .consistency import normalize_list_positions
        return normalize_list_positions(cls, scope_values)

    @classmethod
    def check_consistency(cls, scope_values: Optional[Dict[str, Any]] = None):
        """检查位置是否连续、无重复且反向位置同步"""
        from .consistency import check_list_consistency
        return check_list_consistency(cls, scope_values)

    @classmethod
    def repair_consistency(cls) -> List[Dict[str, Any]]:
        """修复所有有问题的范围，返回被修复的范围键"""
        from .consistency import repair_list_consistency
        return repair_list_consistency(cls)
