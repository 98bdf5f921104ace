"""事务重试装饰器

并发调整同一个列表时，数据库可能报告锁冲突或死锁（OperationalError），
启用 sequential_updates 的唯一索引列表还可能出现 IntegrityError。
这类错误整体重试一次事务通常即可成功；位置引擎本身从不重试半个操作。
"""

import time
from functools import wraps
from typing import Callable, Iterator, Optional, Tuple, Type, TypeVar

from sqlalchemy.exc import OperationalError

from ylist.log import get_logger

logger = get_logger("ylist.orm.transaction")

T = TypeVar('T')


def _delays(max_retries: int, retry_delay: float, backoff_multiplier: float,
            max_delay: float) -> Iterator[float]:
    """每次重试前的等待时间（指数退避，带上限）"""
    current = retry_delay
    for _ in range(max_retries):
        yield min(current, max_delay)
        current *= backoff_multiplier


def _next_delay(delays: Iterator[float], attempt: int, max_retries: int,
                error: Exception) -> Optional[float]:
    """取下一次等待时间并记录日志；重试次数用尽返回 None"""
    delay = next(delays, None)
    if delay is None:
        logger.error(
            f"事务重试 {max_retries} 次后仍失败: {type(error).__name__}: {error}"
        )
    else:
        logger.warning(
            f"事务失败 (第 {attempt}/{max_retries + 1} 次), {delay:.2f}s 后重试: "
            f"{type(error).__name__}: {error}"
        )
    return delay


def transaction_with_retry(
    max_retries: int = 3,
    retry_delay: float = 0.1,
    retry_on: Tuple[Type[Exception], ...] = (OperationalError,),
    backoff_multiplier: float = 2.0,
    max_delay: float = 10.0
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """在新事务中执行函数，遇到 retry_on 中的异常时整体重试

    每次尝试都是一个独立的 transaction_manager.transaction()，
    失败的尝试先完整回滚再等待重试；最后一次的异常原样抛出。

    Args:
        max_retries: 最大重试次数（不含首次）
        retry_delay: 初始等待时间（秒）
        retry_on: 需要重试的异常类型
        backoff_multiplier: 退避乘数
        max_delay: 单次等待上限（秒）

    使用示例:
        from sqlalchemy.exc import IntegrityError

        @transaction_with_retry(retry_on=(OperationalError, IntegrityError))
        def promote(todo_id):
            Todo.get(todo_id).move_to_top()
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        from .manager import transaction_manager

        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            delays = _delays(max_retries, retry_delay, backoff_multiplier, max_delay)
            attempt = 0
            while True:
                attempt += 1
                try:
                    with transaction_manager.transaction():
                        return func(*args, **kwargs)
                except retry_on as e:
                    delay = _next_delay(delays, attempt, max_retries, e)
                    if delay is None:
                        raise
                time.sleep(delay)
        return wrapper

    return decorator
