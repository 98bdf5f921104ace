"""列表异常类定义

定义位置管理使用的异常类体系。

数据库本身的错误（约束冲突、连接断开等）不在此体系内，
由 SQLAlchemy 原样抛给调用方。
"""

import copy
from enum import Enum
from typing import Optional, List, Any, Dict, Union


class ErrorCode(str, Enum):
    """错误代码枚举

    继承自 str，可以直接作为字符串使用。

    使用示例:
        from ylist.exceptions import ErrorCode, ListConfigurationError

        try:
            ListConfig(add_new_at="middle")
        except ListConfigurationError as e:
            assert e.code == ErrorCode.INVALID_ADD_NEW_AT
    """

    # ==================== 通用错误 ====================
    LIST_ERROR = "LIST_ERROR"

    # ==================== 配置相关 ====================
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    INVALID_ADD_NEW_AT = "INVALID_ADD_NEW_AT"
    INVALID_COLUMN = "INVALID_COLUMN"
    INVALID_SCOPE = "INVALID_SCOPE"

    # ==================== 范围相关 ====================
    SCOPE_MISMATCH = "SCOPE_MISMATCH"

    # ==================== 记录状态 ====================
    RECORD_NOT_PERSISTED = "RECORD_NOT_PERSISTED"

    # ==================== 数据库相关 ====================
    DATABASE_NOT_INITIALIZED = "DATABASE_NOT_INITIALIZED"


# 类型别名，支持枚举和字符串
ErrorCodeType = Union[str, ErrorCode]


class ListException(Exception):
    """列表异常基类

    属性:
        message: 错误消息
        code: 错误代码（支持 ErrorCode 枚举或字符串）
        details: 详细错误信息列表
        extra: 额外的上下文信息

    使用示例:
        raise ListException(
            "列表操作失败",
            code=ErrorCode.LIST_ERROR,
            details=["position 列不存在"],
            model="Todo",
        )
    """

    def __init__(
        self,
        message: str,
        code: ErrorCodeType = ErrorCode.LIST_ERROR,
        details: Optional[List[str]] = None,
        **extra: Any
    ):
        self.message = message
        self.code = code
        self.details = details or []
        self.extra = extra
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典格式

        Returns:
            包含异常信息的字典
        """
        return {
            "message": self.message,
            "code": self.code,
            # 返回深拷贝，避免调用方修改返回值反向污染异常对象内部状态
            "details": copy.deepcopy(self.details),
            "extra": copy.deepcopy(self.extra)
        }

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code!r})"
        )


class ListConfigurationError(ListException):
    """列表配置异常

    配置项组合非法（未知的 add_new_at、不存在的列等）时抛出。
    在模型定义或首次解析配置时即抛出，属于致命错误。

    使用示例:
        raise ListConfigurationError(
            "未知的 add_new_at 取值: middle",
            code=ErrorCode.INVALID_ADD_NEW_AT,
            option="add_new_at",
        )
    """

    def __init__(
        self,
        message: str = "列表配置错误",
        code: ErrorCodeType = ErrorCode.CONFIGURATION_ERROR,
        option: Optional[str] = None,
        **kwargs
    ):
        if option is not None:
            kwargs["option"] = option
        super().__init__(message, code=code, **kwargs)


class ListScopeError(ListException):
    """列表范围异常

    对不在同一范围（scope）内的两条记录执行需要同范围的操作时抛出，
    例如 swap_with()。
    """

    def __init__(
        self,
        message: str = "记录不在同一列表范围内",
        code: ErrorCodeType = ErrorCode.SCOPE_MISMATCH,
        **kwargs
    ):
        super().__init__(message, code=code, **kwargs)


class DatabaseNotInitializedError(ListException):
    """数据库未初始化异常"""

    def __init__(
        self,
        message: str = "数据库未初始化，请先调用 init_database()",
        code: ErrorCodeType = ErrorCode.DATABASE_NOT_INITIALIZED,
        **kwargs
    ):
        super().__init__(message, code=code, **kwargs)


class Err:
    """异常快捷创建类

    使用示例:
        from ylist.exceptions import Err

        raise Err.config("未知的 add_new_at 取值", option="add_new_at")
        raise Err.scope("不能与其他列表中的记录交换位置")
    """

    @staticmethod
    def config(message: str = "列表配置错误", **kwargs) -> ListConfigurationError:
        """配置错误"""
        return ListConfigurationError(message, **kwargs)

    @staticmethod
    def scope(message: str = "记录不在同一列表范围内", **kwargs) -> ListScopeError:
        """范围不一致"""
        return ListScopeError(message, **kwargs)

    @staticmethod
    def not_persisted(message: str = "记录尚未保存，请先调用 save()", **kwargs) -> ListException:
        """记录尚未持久化"""
        return ListException(message, code=ErrorCode.RECORD_NOT_PERSISTED, **kwargs)

    @staticmethod
    def not_initialized(**kwargs) -> DatabaseNotInitializedError:
        """数据库未初始化"""
        return DatabaseNotInitializedError(**kwargs)

    @staticmethod
    def fail(message: str = "列表操作失败", **kwargs) -> ListException:
        """通用列表异常"""
        return ListException(message, **kwargs)
