"""有序列表 Mixin 使用示例

演示 OrderedListMixin 的各种使用场景：
1. 按范围分组的列表（移动、插入、删除）
2. 新记录插到顶部 + 反向位置
3. 直接修改位置 / 范围后保存
4. 在一个事务中批量调整
5. 一致性检查与修复

运行方式（需先 pip install -e .）：
    python examples/orm/demo_ordered_list.py
"""

from typing import Optional

from sqlalchemy import Integer, String, update
from sqlalchemy.orm import Mapped, Session, mapped_column

from ylist.log import setup_root_logger
from ylist.orm import (
    Base,
    CoreModel,
    init_database,
    transaction_manager,
)
from ylist.orm.ordered_list import (
    InvertedPositionFieldMixin,
    ListConfig,
    OrderedListMixin,
    PositionFieldMixin,
)


# ==================== 示例模型 ====================

class TodoItem(CoreModel, PositionFieldMixin, OrderedListMixin):
    """待办事项 - 每个待办清单是一个独立的列表"""
    __tablename__ = "demo_todo_item"
    __list_config__ = ListConfig(scope="todo_list_id")

    todo_list_id: Mapped[int] = mapped_column(Integer, comment="所属清单")
    title: Mapped[str] = mapped_column(String(100), comment="标题")


class NewsFeed(CoreModel, PositionFieldMixin, InvertedPositionFieldMixin, OrderedListMixin):
    """新闻流 - 新消息插到顶部，同时维护反向位置"""
    __tablename__ = "demo_news_feed"
    __list_config__ = ListConfig(add_new_at="top", inverted_position=True, inverted_offset=1000)

    headline: Mapped[str] = mapped_column(String(200), comment="标题")
    source: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, comment="来源")


def print_todos(todo_list_id: int):
    for item in TodoItem.get_list({"todo_list_id": todo_list_id}):
        print(f"  {item.position}. {item.title}")


def demo_scoped_list(session: Session):
    """演示分组列表的基本操作"""
    print("\n" + "=" * 60)
    print("Demo 1: Scoped list (TodoItem)")
    print("=" * 60)

    for title in ["Write report", "Review PR", "Book flights", "Call plumber"]:
        TodoItem(todo_list_id=1, title=title).save()
    TodoItem(todo_list_id=2, title="Buy milk").save()
    session.commit()

    print("\n[Initial list 1]")
    print_todos(1)

    plumber = session.query(TodoItem).filter_by(title="Call plumber").one()
    print(f"\n[Move to top: {plumber.title}]")
    plumber.move_to_top()
    session.commit()
    print_todos(1)

    review = session.query(TodoItem).filter_by(title="Review PR").one()
    print(f"\n[Move lower: {review.title}]")
    review.move_lower()
    session.commit()
    print_todos(1)

    print("\n[Insert new item at position 2]")
    TodoItem(todo_list_id=1, title="Pay invoice", position=2).save(commit=True)
    print_todos(1)

    report = session.query(TodoItem).filter_by(title="Write report").one()
    print(f"\n[Delete: {report.title}]")
    report.delete(commit=True)
    print_todos(1)

    print("\n[List 2 is untouched]")
    print_todos(2)


def demo_top_policy(session: Session):
    """演示 add_new_at=top 与反向位置"""
    print("\n" + "=" * 60)
    print("Demo 2: Newest first (NewsFeed)")
    print("=" * 60)

    for headline in ["Markets open higher", "Storm warning lifted", "Local team wins"]:
        NewsFeed(headline=headline).save(commit=True)

    print("\n[Newest first]")
    for item in NewsFeed.get_list():
        print(f"  {item.position}. {item.headline} (inverted={item.inverted_position})")

    print("\n[Oldest first, ordered by inverted_position desc]")
    for item in session.query(NewsFeed).order_by(NewsFeed.inverted_position.desc()):
        print(f"  {item.headline}")


def demo_save_driven_changes(session: Session):
    """演示直接修改位置或范围后保存"""
    print("\n" + "=" * 60)
    print("Demo 3: Assign position / scope and save")
    print("=" * 60)

    flights = session.query(TodoItem).filter_by(title="Book flights").one()
    print(f"\n[{flights.title}.position = 1]")
    flights.position = 1
    flights.save(commit=True)
    print_todos(1)

    print(f"\n[Move {flights.title} to list 2]")
    flights.update(todo_list_id=2, commit=True)
    print("  list 1:")
    print_todos(1)
    print("  list 2:")
    print_todos(2)


def demo_transaction(session: Session):
    """演示在一个事务中调整多条记录"""
    print("\n" + "=" * 60)
    print("Demo 4: Several moves in one transaction")
    print("=" * 60)

    newest = TodoItem(todo_list_id=1, title="Renew passport").save(commit=True)
    current_top = TodoItem.get_list({"todo_list_id": 1})[0]

    try:
        with transaction_manager.transaction(session=session):
            newest.move_to_top()
            current_top.move_to_bottom()
            raise RuntimeError("changed my mind")
    except RuntimeError as e:
        print(f"\n[Rolled back: {e}]")
    print_todos(1)

    with transaction_manager.transaction(session=session):
        newest.move_to_top()
        current_top.move_to_bottom()
    print("\n[Committed]")
    print_todos(1)


def demo_consistency(session: Session):
    """演示一致性检查与修复"""
    print("\n" + "=" * 60)
    print("Demo 5: Consistency check and repair")
    print("=" * 60)

    # 绕过位置引擎制造一个间隙
    session.execute(
        update(TodoItem).where(TodoItem.title == "Pay invoice").values(position=42)
    )
    session.commit()

    report = TodoItem.check_consistency()
    print(f"\n[ok={report.ok}]")
    for violation in report.violations:
        print(f"  {violation.scope}: {violation.reason} {violation.positions}")

    repaired = TodoItem.repair_consistency()
    session.commit()
    print(f"\n[Repaired scopes: {repaired}]")
    print_todos(1)


def main():
    """主函数"""
    print("=" * 60)
    print("OrderedListMixin Demo")
    print("=" * 60)

    setup_root_logger(level="WARNING")

    # 初始化数据库（内存数据库）
    engine, session_scope = init_database("sqlite:///:memory:", echo=False)
    Base.metadata.create_all(engine)

    session = session_scope()

    try:
        demo_scoped_list(session)
        demo_top_policy(session)
        demo_save_driven_changes(session)
        demo_transaction(session)
        demo_consistency(session)

        print("\n" + "=" * 60)
        print("All demos completed successfully!")
        print("=" * 60)

    except Exception as e:
        print(f"\n[Error] {e}")
        import traceback
        traceback.print_exc()
        session_scope.rollback()
    finally:
        session_scope.remove()


if __name__ == "__main__":
    main()
