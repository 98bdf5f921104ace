"""
ORM基础模型

提供常用的 CRUD 操作，并在保存/删除时按约定调用记录的生命周期回调
（before_create / before_update / before_destroy）。

位置引擎（OrderedListMixin）正是通过这些回调接入保存流程的：
CoreModel 只负责在正确的时机调用它们，自身不持有任何模型注册表。
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, List, ClassVar, TYPE_CHECKING

from sqlalchemy import Integer, DateTime, func, inspect
from sqlalchemy.orm import (
    Mapped,
    mapped_column,
    declared_attr,
    declarative_base,
    object_session,
    Session,
    Query,
)

if TYPE_CHECKING:
    from typing_extensions import Self

from ylist.log import get_logger

from .utils import to_snake_case

logger = get_logger("ylist.orm.core_model")

# 声明基类
Base = declarative_base()

# 生命周期回调名称
BEFORE_CREATE = "before_create"
BEFORE_UPDATE = "before_update"
BEFORE_DESTROY = "before_destroy"


class CoreModel(Base):
    """ORM基础模型类

    提供功能：
    - 自增整数主键
    - 自动表名生成（驼峰转下划线）
    - 创建/更新时间戳
    - 常用 CRUD 操作方法
    - 生命周期回调调度

    生命周期回调约定：
    - save() 保存新对象时调用 before_create()
    - save() / update() 保存已持久化对象时调用 before_update()
    - delete() 删除已持久化对象时调用 before_destroy()

    子类（或混入类）只需定义同名方法即可接入，未定义则跳过。

    使用示例:
        from ylist.orm import CoreModel, OrderedListMixin, ListConfig

        class TodoItem(CoreModel, OrderedListMixin):
            __list_config__ = ListConfig(scope="todo_list_id")

            todo_list_id: Mapped[int] = mapped_column(Integer)
            title: Mapped[str] = mapped_column(String(100))

        item = TodoItem(todo_list_id=1, title="buy milk")
        item.save(commit=True)  # before_create 把它追加到列表底部
    """
    __abstract__ = True

    # 由 init_database() 设置为 scoped_session.query_property()
    if TYPE_CHECKING:
        query: ClassVar[Query[Self]]
    query = None

    # 自动根据类名创建表名
    @declared_attr.directive
    def __tablename__(cls) -> str:
        """驼峰命名转下划线"""
        name = cls.__name__
        if '_' in name:
            raise ValueError(f'{name}字符中包含下划线，无法转换')
        return to_snake_case(name)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True, comment="主键")

    # 时间戳字段
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False),
        server_default=func.now(),
        comment="创建时间"
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=False),
        nullable=True,
        onupdate=func.now(),
        comment="更新时间"
    )

    def __repr__(self):
        return f"<{self.__class__.__name__} id={self.id}>"

    @property
    def session(self) -> Session:
        """获取当前 session

        优先使用对象已经所在的 session，其次是 query 属性绑定的 session，
        最后从全局 scoped_session 获取
        """
        session = object_session(self)
        if session is not None:
            return session
        if self.__class__.query is not None:
            return self.__class__.query.session
        from .db_session import db_manager
        return db_manager.get_session()

    # ==================== 生命周期 ====================

    def _fire_lifecycle(self, name: str) -> None:
        """调用生命周期回调（未定义则跳过）"""
        callback = getattr(self, name, None)
        if callable(callback):
            logger.debug(f"{self!r}: {name}")
            callback()

    # ==================== CRUD 操作方法 ====================

    def save(self, commit: bool = False) -> Self:
        """保存对象（自动判断新增或更新）

        新对象在加入 session 之前调用 before_create()；
        已持久化（或分离后重新加入）的对象调用 before_update()。
        同一个尚未 flush 的新对象重复 save() 只触发一次 before_create()。

        Args:
            commit: 是否立即提交，默认False
                   - 无事务时：执行 session.commit()
                   - 有事务时：commit 被抑制，只执行 flush

        Returns:
            self: 返回自身，支持链式调用
        """
        state = inspect(self)
        session = self.session

        if state.transient or (state.pending and not self.__dict__.get('_created_hook_fired')):
            self._fire_lifecycle(BEFORE_CREATE)
            self.__dict__['_created_hook_fired'] = True
            session.add(self)
        elif state.persistent:
            self._fire_lifecycle(BEFORE_UPDATE)
        elif state.detached:
            session.add(self)
            self._fire_lifecycle(BEFORE_UPDATE)
        else:
            session.add(self)

        self._commit_or_flush(commit)
        return self

    def update(self, commit: bool = False, **kwargs) -> Self:
        """更新对象属性并保存

        使用示例:
            item.update(title="new title", commit=True)
            item.update(position=1)  # 交给位置引擎，相当于 move_to(1)
        """
        for key, value in kwargs.items():
            if hasattr(self, key):
                setattr(self, key, value)
        return self.save(commit)

    def delete(self, commit: bool = False) -> None:
        """删除对象

        已持久化的对象在删除前调用 before_destroy()
        """
        state = inspect(self)
        session = self.session
        if state.pending:
            # 已经调整过兄弟记录的新对象需要先落库，才能正常回收它的位置
            session.flush()
        if state.persistent:
            self._fire_lifecycle(BEFORE_DESTROY)
        session.delete(self)
        self._commit_or_flush(commit)

    def refresh(self, attribute_names: Optional[List[str]] = None) -> Self:
        """从数据库重新加载对象状态

        位置引擎使用批量 UPDATE 调整兄弟记录，已加载到内存的兄弟对象会被同步；
        在其他 session 或原生 SQL 修改过数据后，可用此方法读取最新值。
        """
        self.session.refresh(self, attribute_names=attribute_names)
        return self

    @classmethod
    def get(cls, id: int):
        """根据ID获取对象，不存在返回None"""
        return cls.query.filter_by(id=id).one_or_none()

    @classmethod
    def get_all(cls):
        """获取所有记录"""
        return cls.query.all()

    def to_dict(self, exclude: set = None) -> dict:
        """转换为字典

        Args:
            exclude: 需要排除的字段集合
        """
        exclude = exclude or set()
        return {
            c.key: getattr(self, c.key)
            for c in inspect(self).mapper.column_attrs
            if c.key not in exclude
        }

    def _commit_or_flush(self, commit: bool = False) -> None:
        """根据参数决定是否提交

        在事务上下文中且启用了提交抑制时，commit=True 只执行 flush，
        提交时机交给外层事务
        """
        if not commit:
            return
        from .transaction import transaction_manager
        if transaction_manager.should_suppress_commit():
            logger.debug("commit=True 被事务上下文抑制")
            self.session.flush()
            return
        self.session.commit()
