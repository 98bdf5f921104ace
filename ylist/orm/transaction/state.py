"""事务与保存点的状态"""

from enum import Enum


class TransactionState(str, Enum):
    """事务/保存点状态

        INACTIVE -> ACTIVE -> COMMITTED
                       |
                       +--> ROLLED_BACK
                       +--> FAILED（提交或回滚本身出错）

    保存点创建即为 ACTIVE，释放后为 COMMITTED。
    """

    INACTIVE = "inactive"
    ACTIVE = "active"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"
