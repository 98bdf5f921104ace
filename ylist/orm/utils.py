"""ORM 工具函数"""

import re


def to_snake_case(name: str) -> str:
    """驼峰命名转下划线命名（支持连续大写缩写如 E2E、API、URL）

    Examples:
        >>> to_snake_case("TodoItem")
        'todo_item'
        >>> to_snake_case("APIChecklist")
        'api_checklist'
        >>> to_snake_case("E2EStep")
        'e2e_step'
    """
    # 连续大写+数字后跟大写+小写：APIChecklist → API_Checklist
    result = re.sub(r'([A-Z\d]+)([A-Z][a-z])', r'\1_\2', name)
    # 小写字母后跟大写：todoItem → todo_Item
    result = re.sub(r'([a-z])([A-Z])', r'\1_\2', result)
    return result.lower()
