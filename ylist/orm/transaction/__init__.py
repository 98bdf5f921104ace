"""事务管理模块

位置引擎的每个操作都在保存点内执行：
- 操作成功时释放保存点，变更合并到调用方的事务
- 操作失败时回滚保存点，列表恢复到操作前的状态
- 提交时机始终由调用方决定

使用示例:
    from ylist.orm import transaction_manager as tm

    # 上下文管理器：多个列表操作整体提交
    with tm.transaction():
        first.move_to_bottom()
        second.insert_at(2)

    # 装饰器
    @tm.transactional()
    def promote(todo_id):
        Todo.get(todo_id).move_to_top()
"""

from .state import TransactionState
from .exceptions import (
    TransactionError,
    TransactionNotActiveError,
    TransactionAlreadyCommittedError,
    TransactionAlreadyRolledBackError,
    SavepointError,
    SavepointNotFoundError,
    PropagationError,
)
from .propagation import TransactionPropagation
from .context import (
    TransactionContext,
    SavepointContext,
)
from .manager import (
    TransactionManager,
    transaction_manager,
    get_current_transaction,
)
from .retry import transaction_with_retry

__all__ = [
    # 状态
    "TransactionState",

    # 异常
    "TransactionError",
    "TransactionNotActiveError",
    "TransactionAlreadyCommittedError",
    "TransactionAlreadyRolledBackError",
    "SavepointError",
    "SavepointNotFoundError",
    "PropagationError",

    # 传播行为
    "TransactionPropagation",

    # 上下文
    "TransactionContext",
    "SavepointContext",

    # 管理器
    "TransactionManager",
    "transaction_manager",
    "get_current_transaction",

    # 重试装饰器
    "transaction_with_retry",
]
