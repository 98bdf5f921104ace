"""事务管理器

transaction_manager 是事务、保存点和 @transactional 装饰器的统一入口。
位置引擎通过 transaction_manager.savepoint() 执行每个列表操作。
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from functools import wraps
from typing import Callable, Optional, TypeVar, Generator

from sqlalchemy.orm import Session

from ylist.log import get_logger

from .propagation import TransactionPropagation
from .context import TransactionContext, SavepointContext
from .exceptions import PropagationError

logger = get_logger("ylist.orm.transaction")

T = TypeVar('T')

# 当前事务上下文（线程/协程隔离）
_current_transaction: ContextVar[Optional[TransactionContext]] = ContextVar(
    '_current_transaction', default=None
)


def get_current_transaction() -> Optional[TransactionContext]:
    """当前线程/协程中的事务上下文，不在事务中返回 None"""
    return _current_transaction.get()


class TransactionManager:
    """事务管理器（单例）

    使用示例:
        from ylist.orm import transaction_manager as tm

        # 多个列表调整整体提交或整体回滚
        with tm.transaction():
            first.move_to_bottom()
            second.move_to_top()

        @tm.transactional()
        def archive(todo_id):
            Todo.get(todo_id).remove_from_list()
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._default_suppress_commit = True
        return cls._instance

    def get_session(self) -> Session:
        from ..db_session import db_manager
        return db_manager.get_session()

    @property
    def current_transaction(self) -> Optional[TransactionContext]:
        return _current_transaction.get()

    def configure(self, suppress_commit_in_transaction: bool = None) -> None:
        """修改默认配置

        Args:
            suppress_commit_in_transaction: 事务中是否抑制 save(commit=True)
        """
        if suppress_commit_in_transaction is not None:
            self._default_suppress_commit = suppress_commit_in_transaction

    def is_in_transaction(self) -> bool:
        tx = self.current_transaction
        return tx is not None and tx.is_active

    def should_suppress_commit(self) -> bool:
        """CoreModel._commit_or_flush 的判断依据"""
        tx = self.current_transaction
        return tx is not None and tx.should_suppress_commit()

    # ==================== 事务 ====================

    @staticmethod
    @contextmanager
    def _join(current: TransactionContext, propagation: TransactionPropagation):
        current.join()
        logger.debug(f"{propagation.value.upper()}: 加入现有事务")
        try:
            yield current
        finally:
            current.leave()

    @contextmanager
    def transaction(
        self,
        session: Session = None,
        propagation: TransactionPropagation = TransactionPropagation.REQUIRED,
        auto_commit: bool = True,
        suppress_commit: bool = None
    ) -> Generator[TransactionContext, None, None]:
        """开启（或加入）一个事务

        Args:
            session: 数据库会话，默认取 db_manager 的当前会话
            propagation: 传播行为
                - REQUIRED: 有事务则加入，否则新建
                - MANDATORY: 必须已在事务中
                - REQUIRES_NEW / NESTED: 已在事务中时使用保存点；
                  NESTED 在事务外抛出 PropagationError
            auto_commit: 最外层退出时是否提交
            suppress_commit: 是否抑制内部的 commit=True，None 使用默认配置

        Yields:
            TransactionContext 对象
        """
        current = self.current_transaction
        in_transaction = current is not None and current.is_active

        if propagation == TransactionPropagation.MANDATORY and not in_transaction:
            raise PropagationError("MANDATORY", "必须在事务中执行")
        if propagation == TransactionPropagation.NESTED and not in_transaction:
            raise PropagationError("NESTED", "NESTED 需要一个活跃的外层事务")

        if in_transaction:
            if propagation in (TransactionPropagation.REQUIRED, TransactionPropagation.MANDATORY):
                with self._join(current, propagation) as tx:
                    yield tx
                return
            logger.debug(f"{propagation.value.upper()}: 在现有事务中创建保存点")
            with current.savepoint():
                yield current
            return

        if session is None:
            session = self.get_session()
        if suppress_commit is None:
            suppress_commit = self._default_suppress_commit

        ctx = TransactionContext(
            session=session,
            auto_commit=auto_commit,
            propagation=propagation,
            suppress_commit=suppress_commit
        )
        token = _current_transaction.set(ctx)
        try:
            with ctx:
                yield ctx
        finally:
            _current_transaction.reset(token)

    @contextmanager
    def savepoint(
        self,
        session: Session = None,
        name: str = None
    ) -> Generator[SavepointContext, None, None]:
        """开启保存点，不提交外层事务

        当前事务使用同一个 session 时由它管理保存点（同名自动追加序号），
        否则直接在 session 上 begin_nested()。

        使用示例:
            with tm.savepoint(session, "list_move_to"):
                session.execute(update(...))
        """
        if session is None:
            session = self.get_session()

        current = self.current_transaction
        if current is not None and current.is_active and current.session is session:
            with current.savepoint(name) as sp:
                yield sp
            return

        with SavepointContext(name or "sp", session.begin_nested()) as sp:
            yield sp

    # ==================== 装饰器 ====================

    def transactional(
        self,
        propagation: TransactionPropagation = TransactionPropagation.REQUIRED,
        rollback_for: tuple = (Exception,),
        no_rollback_for: tuple = (),
        suppress_commit: bool = None
    ):
        """事务装饰器

        Args:
            propagation: 传播行为
            rollback_for: 触发回滚的异常类型
            no_rollback_for: 不触发回滚的异常类型（仍会抛出）
            suppress_commit: 是否抑制内部提交

        使用示例:
            @tm.transactional()
            def promote(todo_id):
                Todo.get(todo_id).move_to_top()
        """
        def decorator(func: Callable[..., T]) -> Callable[..., T]:
            @wraps(func)
            def wrapper(*args, **kwargs) -> T:
                with self.transaction(
                    propagation=propagation,
                    suppress_commit=suppress_commit
                ) as tx:
                    try:
                        return func(*args, **kwargs)
                    except no_rollback_for:
                        raise
                    except rollback_for:
                        tx.rollback()
                        raise
            return wrapper

        return decorator


# 全局单例
transaction_manager = TransactionManager()
