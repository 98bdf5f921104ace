"""异常处理模块

提供列表相关的异常类体系。

使用示例:
    from ylist.exceptions import Err, ListConfigurationError

    try:
        todo.swap_with(other_list_item)
    except ListScopeError as e:
        print(e.to_dict())
"""

from .exceptions import (
    Err,
    ErrorCode,
    ErrorCodeType,
    ListException,
    ListConfigurationError,
    ListScopeError,
    DatabaseNotInitializedError,
)

__all__ = [
    "Err",
    "ErrorCode",
    "ErrorCodeType",
    "ListException",
    "ListConfigurationError",
    "ListScopeError",
    "DatabaseNotInitializedError",
]
