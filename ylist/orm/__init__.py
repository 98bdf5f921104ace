"""ORM 模块

导出:
    - Base / CoreModel: 基础模型（CRUD + 生命周期回调）
    - 数据库会话管理: init_database, db_session_scope, with_db_session ...
    - 事务管理: transaction_manager, TransactionPropagation, transaction_with_retry ...
    - 有序列表: ListConfig, OrderedListMixin, PositionFieldMixin ...

使用示例:
    from ylist.orm import (
        CoreModel, ListConfig, OrderedListMixin, PositionFieldMixin, init_database,
    )

    class Chapter(CoreModel, PositionFieldMixin, OrderedListMixin):
        __list_config__ = ListConfig(scope="book_id")
        book_id: Mapped[int] = mapped_column(Integer)

    init_database("sqlite:///./books.db")
"""

from .core_model import Base, CoreModel
from .db_session import (
    db_manager,
    init_database,
    get_engine,
    db_session_scope,
    with_db_session,
    close_database,
    enable_sqlite_savepoints,
)
from .transaction import (
    TransactionState,
    TransactionError,
    TransactionNotActiveError,
    TransactionAlreadyCommittedError,
    TransactionAlreadyRolledBackError,
    SavepointError,
    SavepointNotFoundError,
    PropagationError,
    TransactionPropagation,
    TransactionContext,
    SavepointContext,
    TransactionManager,
    transaction_manager,
    get_current_transaction,
    transaction_with_retry,
)
from .ordered_list import (
    AddNewAt,
    ListConfig,
    PositionFieldMixin,
    InvertedPositionFieldMixin,
    ScopeResolver,
    OrderedListMixin,
    ScopeViolation,
    ConsistencyReport,
    check_list_consistency,
    repair_list_consistency,
    normalize_list_positions,
)

__all__ = [
    # 基础模型
    "Base",
    "CoreModel",

    # 会话管理
    "db_manager",
    "init_database",
    "get_engine",
    "db_session_scope",
    "with_db_session",
    "close_database",
    "enable_sqlite_savepoints",

    # 事务
    "TransactionState",
    "TransactionError",
    "TransactionNotActiveError",
    "TransactionAlreadyCommittedError",
    "TransactionAlreadyRolledBackError",
    "SavepointError",
    "SavepointNotFoundError",
    "PropagationError",
    "TransactionPropagation",
    "TransactionContext",
    "SavepointContext",
    "TransactionManager",
    "transaction_manager",
    "get_current_transaction",
    "transaction_with_retry",

    # 有序列表
    "AddNewAt",
    "ListConfig",
    "PositionFieldMixin",
    "InvertedPositionFieldMixin",
    "ScopeResolver",
    "OrderedListMixin",
    "ScopeViolation",
    "ConsistencyReport",
    "check_list_consistency",
    "repair_list_consistency",
    "normalize_list_positions",
]
