"""事务上下文

TransactionContext 包住调用方的一个工作单元（通常是若干次列表调整），
SavepointContext 包住位置引擎的单个操作。
"""

from __future__ import annotations

from contextlib import contextmanager
from itertools import count
from typing import Dict, Optional, TYPE_CHECKING

from sqlalchemy.orm import Session

from ylist.log import get_logger

from .state import TransactionState
from .propagation import TransactionPropagation
from .exceptions import (
    TransactionNotActiveError,
    TransactionAlreadyCommittedError,
    TransactionAlreadyRolledBackError,
    SavepointNotFoundError,
)

if TYPE_CHECKING:
    from sqlalchemy.orm.session import SessionTransaction

logger = get_logger("ylist.orm.transaction")


class SavepointContext:
    """单个保存点

    正常退出时释放（并入外层事务），异常退出时回滚到保存点并继续抛出异常。
    位移语句和自身位置的写入要么一起保留，要么一起撤销。

    使用示例:
        with tx.savepoint("list_move_to") as sp:
            session.execute(update(...))
    """

    def __init__(
        self,
        name: str,
        nested: 'SessionTransaction',
        parent: Optional['TransactionContext'] = None
    ):
        self.name = name
        self.parent = parent
        self._nested = nested
        self._state = TransactionState.ACTIVE

    @property
    def state(self) -> TransactionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state == TransactionState.ACTIVE

    def release(self) -> None:
        """释放保存点；释放前 SQLAlchemy 会 flush 待写入的变更"""
        if not self.is_active:
            return
        try:
            self._nested.commit()
        except Exception:
            self._state = TransactionState.FAILED
            raise
        self._state = TransactionState.COMMITTED
        logger.debug(f"保存点 {self.name} 已释放")

    def rollback(self) -> None:
        """回滚到保存点

        flush 失败后嵌套事务处于 deactive 状态，同样需要 rollback 才能关闭
        """
        if self._state in (TransactionState.COMMITTED, TransactionState.ROLLED_BACK):
            return
        try:
            self._nested.rollback()
        except Exception as e:
            self._state = TransactionState.FAILED
            logger.error(f"保存点 {self.name} 回滚失败: {e}")
            raise
        self._state = TransactionState.ROLLED_BACK
        logger.debug(f"保存点 {self.name} 已回滚")

    def __enter__(self) -> 'SavepointContext':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is not None:
            self.rollback()
            return False
        try:
            self.release()
        except Exception:
            self.rollback()
            raise
        return False

    def __repr__(self) -> str:
        return f"SavepointContext(name={self.name!r}, state={self._state.value})"


class TransactionContext:
    """调用方的一个工作单元

    - 最外层退出时统一提交，出错时整体回滚
    - 同一事务中被 REQUIRED / MANDATORY 加入时只增加嵌套层级
    - 事务内的 save(commit=True) 只 flush，提交交给最外层
    - 为每个列表操作提供保存点，同名保存点自动追加序号

    使用示例:
        with TransactionContext(session) as tx:
            todo.move_to_top()
            with tx.savepoint("reorder_rest"):
                other.move_lower()
    """

    def __init__(
        self,
        session: Session,
        auto_commit: bool = True,
        propagation: TransactionPropagation = None,
        suppress_commit: bool = True
    ):
        self._session = session
        self._auto_commit = auto_commit
        self._propagation = propagation or TransactionPropagation.REQUIRED
        self._suppress_commit = suppress_commit
        self._state = TransactionState.INACTIVE
        self._nesting_level = 0
        self._allow_commit_depth = 0
        self._savepoints: Dict[str, SavepointContext] = {}
        self._savepoint_ids = count(1)

    @property
    def session(self) -> Session:
        return self._session

    @property
    def state(self) -> TransactionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state == TransactionState.ACTIVE

    @property
    def nesting_level(self) -> int:
        return self._nesting_level

    @property
    def propagation(self) -> TransactionPropagation:
        return self._propagation

    @property
    def suppress_commit(self) -> bool:
        """当前是否抑制 commit=True（allow_commit() 内不抑制）"""
        return self._suppress_commit and self._allow_commit_depth == 0

    # ==================== 生命周期 ====================

    def begin(self) -> 'TransactionContext':
        """开始事务；已经开始时等同于 join()"""
        if self.is_active:
            return self.join()
        # session 在第一条语句时自动开启数据库事务
        self._state = TransactionState.ACTIVE
        self._nesting_level = 1
        logger.debug("事务开始")
        return self

    def join(self) -> 'TransactionContext':
        """内层调用加入本事务"""
        self._nesting_level += 1
        logger.debug(f"加入现有事务 (level={self._nesting_level})")
        return self

    def leave(self) -> None:
        """内层调用离开本事务"""
        if self._nesting_level > 1:
            self._nesting_level -= 1

    def commit(self) -> None:
        """提交；内层调用只减少嵌套层级"""
        if self._state == TransactionState.COMMITTED:
            raise TransactionAlreadyCommittedError()
        if self._state == TransactionState.ROLLED_BACK:
            raise TransactionAlreadyRolledBackError()
        if not self.is_active:
            raise TransactionNotActiveError(f"无法提交：事务状态为 {self._state}")

        if self._nesting_level > 1:
            self.leave()
            return

        try:
            self._session.commit()
        except Exception:
            self._state = TransactionState.FAILED
            raise
        self._state = TransactionState.COMMITTED
        self._nesting_level = 0
        logger.debug("事务已提交")

    def rollback(self) -> None:
        """整体回滚（幂等）"""
        if self._state == TransactionState.COMMITTED:
            raise TransactionAlreadyCommittedError("无法回滚：事务已提交")
        if self._state not in (TransactionState.ACTIVE, TransactionState.FAILED):
            return

        try:
            self._session.rollback()
        except Exception as e:
            self._state = TransactionState.FAILED
            logger.error(f"事务回滚失败: {e}")
            raise
        self._state = TransactionState.ROLLED_BACK
        self._nesting_level = 0
        self._savepoints.clear()
        logger.debug("事务已回滚")

    # ==================== 保存点 ====================

    @contextmanager
    def savepoint(self, name: str = None):
        """在本事务中开启保存点

        Args:
            name: 保存点名称，默认 sp_<序号>；与仍在使用的保存点同名时追加序号

        Yields:
            SavepointContext 对象
        """
        if not self.is_active:
            raise TransactionNotActiveError("无法创建保存点：事务未激活")

        seq = next(self._savepoint_ids)
        if name is None:
            name = f"sp_{seq}"
        elif name in self._savepoints:
            name = f"{name}_{seq}"

        sp = SavepointContext(name, self._session.begin_nested(), self)
        self._savepoints[name] = sp
        logger.debug(f"创建保存点: {name}")
        try:
            with sp:
                yield sp
        finally:
            self._savepoints.pop(name, None)

    def get_savepoint(self, name: str) -> Optional[SavepointContext]:
        """获取仍在使用中的保存点"""
        return self._savepoints.get(name)

    def rollback_to_savepoint(self, name: str) -> None:
        sp = self._savepoints.get(name)
        if sp is None:
            raise SavepointNotFoundError(name)
        sp.rollback()

    # ==================== 提交抑制 ====================

    @contextmanager
    def allow_commit(self):
        """临时让 commit=True 真正提交"""
        self._allow_commit_depth += 1
        try:
            yield
        finally:
            self._allow_commit_depth -= 1

    def should_suppress_commit(self) -> bool:
        """CoreModel 据此决定 commit=True 是提交还是只 flush"""
        return self.is_active and self.suppress_commit

    # ==================== 上下文管理器 ====================

    def __enter__(self) -> 'TransactionContext':
        return self.begin()

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is not None:
            self.rollback()
            return False

        if self._nesting_level > 1:
            self.leave()
        elif self._auto_commit and self.is_active:
            try:
                self.commit()
            except Exception:
                self.rollback()
                raise
        return False

    def __repr__(self) -> str:
        return (
            f"TransactionContext(state={self._state.value}, "
            f"nesting_level={self._nesting_level}, "
            f"suppress_commit={self.suppress_commit})"
        )
