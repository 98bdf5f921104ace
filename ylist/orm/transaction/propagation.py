"""事务传播行为"""

from enum import Enum


class TransactionPropagation(str, Enum):
    """已在事务中再次调用 transaction() / @transactional 时的行为

    使用示例:
        @tm.transactional(propagation=TransactionPropagation.NESTED)
        def move_item(item_id, position):
            Todo.get(item_id).move_to(position)
    """

    # 有事务则加入，没有则新建（默认）
    REQUIRED = "required"
    # 有事务时在其中开保存点，没有则新建
    REQUIRES_NEW = "requires_new"
    # 必须已在事务中
    MANDATORY = "mandatory"
    # 必须已在事务中，并在其中开保存点
    NESTED = "nested"
