"""列表一致性检查与修复

检查每个范围内相关且在列表中的记录：
- gap: 位置不是从 top_of_list 开始的连续整数
- duplicate: 多条记录占用同一位置
- inverted_mismatch: 反向位置不等于 inverted_offset - position

使用示例:
    report = TodoItem.check_consistency()
    if not report.ok:
        for violation in report.violations:
            print(violation.scope, violation.reason, violation.positions)
        TodoItem.repair_consistency()
"""

from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

from sqlalchemy.orm import Session

from ylist.log import get_logger

from ..transaction import transaction_manager

logger = get_logger("ylist.orm.ordered_list")

GAP = "gap"
DUPLICATE = "duplicate"
INVERTED_MISMATCH = "inverted_mismatch"


@dataclass(frozen=True)
class ScopeViolation:
    """某个范围内的一处不一致

    Attributes:
        scope: 范围键取值；范围列为 NULL 的记录自成列表，额外带上主键 id
        positions: 有问题的位置（缺失的、重复的或反向位置不匹配的）
        reason: gap / duplicate / inverted_mismatch
    """

    scope: Dict[str, Any]
    positions: Tuple[int, ...]
    reason: str


@dataclass(frozen=True)
class ConsistencyReport:
    ok: bool
    checked_scopes: int
    violations: Tuple[ScopeViolation, ...] = ()

    @property
    def offending_scopes(self) -> List[Dict[str, Any]]:
        """去重后的问题范围列表（保持出现顺序）"""
        seen = []
        for violation in self.violations:
            if violation.scope not in seen:
                seen.append(violation.scope)
        return seen


def _session_for(model_cls, session: Optional[Session]) -> Session:
    if session is not None:
        return session
    return model_cls.query.session


def _scope_groups(model_cls, session: Session) -> List[Dict[str, Any]]:
    """表中出现过的所有范围键"""
    resolver = model_cls.list_scope()
    names = resolver.config.scope
    if not names:
        return [{}]
    columns = [getattr(model_cls, name) for name in names]
    return [dict(zip(names, row)) for row in session.query(*columns).distinct()]


def _expand_null_scopes(model_cls, session: Session,
                        groups: List[Dict[str, Any]]) -> Iterator[Dict[str, Any]]:
    """范围列为 NULL 的范围键展开为每条记录一个"""
    resolver = model_cls.list_scope()
    for values in groups:
        has_null = any(values.get(name) is None for name in resolver.config.scope)
        if not has_null or "id" in values:
            yield values
            continue
        ids = session.query(resolver.primary_key).filter(
            *resolver.condition_for_values(values)
        ).order_by(resolver.primary_key)
        for (row_id,) in ids:
            yield {**values, "id": row_id}


def _list_rows(model_cls, session: Session, values: Dict[str, Any], for_update: bool = False) -> list:
    resolver = model_cls.list_scope()
    column = resolver.position_column
    query = session.query(model_cls).filter(
        *resolver.condition_for_values(values),
        *resolver.relevance_condition(),
        column.isnot(None),
    ).order_by(column.asc(), resolver.primary_key.asc())
    if for_update:
        # 加锁后按数据库中的最新取值编号
        query = query.with_for_update().populate_existing()
    return query.all()


def check_list_consistency(model_cls, scope_values: Optional[Dict[str, Any]] = None,
                           session: Optional[Session] = None) -> ConsistencyReport:
    """检查一个范围（或所有范围）的位置一致性

    Args:
        model_cls: 使用 OrderedListMixin 的模型
        scope_values: 只检查指定范围，None 表示检查所有范围
        session: 数据库会话，默认使用 model_cls.query.session
    """
    resolver = model_cls.list_scope()
    config = resolver.config
    session = _session_for(model_cls, session)

    groups = _scope_groups(model_cls, session) if scope_values is None else [dict(scope_values)]

    violations = []
    checked = 0
    for values in _expand_null_scopes(model_cls, session, groups):
        checked += 1
        rows = _list_rows(model_cls, session, values)
        if not rows:
            continue

        positions = [getattr(row, config.column) for row in rows]
        counts = Counter(positions)
        duplicates = tuple(sorted(p for p, n in counts.items() if n > 1))
        if duplicates:
            violations.append(ScopeViolation(values, duplicates, DUPLICATE))

        expected = set(range(config.top_of_list, config.top_of_list + len(rows)))
        missing = tuple(sorted(expected - set(positions)))
        if missing:
            violations.append(ScopeViolation(values, missing, GAP))

        if config.inverted_position:
            mismatched = tuple(
                getattr(row, config.column) for row in rows
                if getattr(row, config.inverted_column)
                != config.inverted_offset - getattr(row, config.column)
            )
            if mismatched:
                violations.append(ScopeViolation(values, mismatched, INVERTED_MISMATCH))

    report = ConsistencyReport(
        ok=not violations,
        checked_scopes=checked,
        violations=tuple(violations),
    )
    if not report.ok:
        logger.warning(
            f"{model_cls.__name__}: 发现 {len(violations)} 处位置不一致，"
            f"涉及 {len(report.offending_scopes)} 个范围"
        )
    return report


def _normalize_group(model_cls, session: Session, values: Dict[str, Any]) -> int:
    config = model_cls.resolve_list_config()
    rows = _list_rows(model_cls, session, values, for_update=True)

    changes = []
    for offset, row in enumerate(rows):
        target = config.top_of_list + offset
        stale = getattr(row, config.column) != target
        if config.inverted_position:
            stale = stale or getattr(row, config.inverted_column) != config.inverted_offset - target
        if stale:
            changes.append((row, target))
    if not changes:
        return 0

    if config.sequential_updates:
        # 先整体置空，避免编号过程中撞上唯一索引
        for row, _ in changes:
            row._write_position(None)
        session.flush()
    for row, target in changes:
        row._write_position(target)
    session.flush()
    return len(changes)


def normalize_list_positions(model_cls, scope_values: Optional[Dict[str, Any]] = None,
                             session: Optional[Session] = None) -> int:
    """按 (position, id) 顺序把范围内的记录重新编号为 top..top+n-1

    Returns:
        被改写的记录数
    """
    session = _session_for(model_cls, session)
    groups = _scope_groups(model_cls, session) if scope_values is None else [dict(scope_values)]

    changed = 0
    with transaction_manager.savepoint(session, "list_normalize"):
        for values in list(_expand_null_scopes(model_cls, session, groups)):
            changed += _normalize_group(model_cls, session, values)
    if changed:
        logger.info(f"{model_cls.__name__}: 重新编号 {changed} 条记录")
    return changed


def repair_list_consistency(model_cls, session: Optional[Session] = None) -> List[Dict[str, Any]]:
    """修复所有存在问题的范围

    Returns:
        被修复的范围键列表
    """
    session = _session_for(model_cls, session)
    report = check_list_consistency(model_cls, session=session)
    for values in report.offending_scopes:
        normalize_list_positions(model_cls, values, session=session)
    return report.offending_scopes
