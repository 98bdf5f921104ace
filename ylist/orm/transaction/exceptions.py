"""事务异常类

定义事务管理相关的异常层次结构
"""


class TransactionError(Exception):
    """事务错误基类

    所有事务相关的异常都继承自此类
    """
    pass


class TransactionNotActiveError(TransactionError):
    """事务未激活错误"""

    def __init__(self, message: str = "事务未激活"):
        super().__init__(message)


class TransactionAlreadyCommittedError(TransactionError):
    """事务已提交错误"""

    def __init__(self, message: str = "事务已提交，无法执行此操作"):
        super().__init__(message)


class TransactionAlreadyRolledBackError(TransactionError):
    """事务已回滚错误"""

    def __init__(self, message: str = "事务已回滚，无法执行此操作"):
        super().__init__(message)


class SavepointError(TransactionError):
    """保存点错误基类"""
    pass


class SavepointNotFoundError(SavepointError):
    """保存点不存在错误"""

    def __init__(self, savepoint_name: str):
        self.savepoint_name = savepoint_name
        super().__init__(f"保存点 '{savepoint_name}' 不存在")


class PropagationError(TransactionError):
    """事务传播错误

    当事务传播行为不满足条件时抛出
    """

    def __init__(self, propagation: str, message: str):
        self.propagation = propagation
        super().__init__(f"[{propagation}] {message}")
