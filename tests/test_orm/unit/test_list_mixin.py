"""有序列表 OrderedListMixin 测试

测试位置引擎的核心功能：
1. 基本移动操作（move_higher, move_lower, move_to_top, move_to_bottom, move_to）
2. 新记录的放置策略（bottom / top / None / 显式位置）
3. 删除、移出列表、直接修改位置、范围变更
4. 反向位置、范围隔离、相关性过滤
5. 查询方法与失败回滚
"""

import pytest
from sqlalchemy import update

from ylist.exceptions import ErrorCode, ListException, ListScopeError
from ylist.orm.ordered_list import OrderedListMixin, ScopeResolver

from tests.helpers import positions_by_title, titles_in_order
from tests.helpers.list_models import Draft, Headline, Lane, Task, TodoItem


# ==================== 辅助函数 ====================

def create_todos(*titles, todo_list_id=1):
    return [
        TodoItem(todo_list_id=todo_list_id, title=title).save(commit=True)
        for title in titles
    ]


def todo_titles(todo_list_id=1):
    return titles_in_order(TodoItem, {"todo_list_id": todo_list_id})


def assert_inverted_in_sync():
    for item in TodoItem.query.all():
        if item.position is None:
            assert item.inverted_position is None
        else:
            assert item.inverted_position == -item.position


# ==================== 基本移动 ====================

class TestBasicMoves:
    """基本移动操作测试"""

    @pytest.fixture(autouse=True)
    def setup_db(self, session_scope):
        self.session_scope = session_scope

    def test_new_records_append_to_bottom(self):
        """测试新记录默认追加到底部"""
        create_todos("A", "B", "C", "D")

        assert positions_by_title(TodoItem) == {"A": 1, "B": 2, "C": 3, "D": 4}
        assert_inverted_in_sync()

    def test_move_lower(self):
        """测试下移"""
        a, b, c, d = create_todos("A", "B", "C", "D")

        assert b.move_lower() is True
        self.session_scope.commit()

        assert todo_titles() == ["A", "C", "B", "D"]
        assert positions_by_title(TodoItem) == {"A": 1, "B": 3, "C": 2, "D": 4}
        assert_inverted_in_sync()

    def test_move_higher(self):
        """测试上移"""
        a, b, c, d = create_todos("A", "B", "C", "D")

        assert b.move_higher() is True
        self.session_scope.commit()

        assert todo_titles() == ["B", "A", "C", "D"]
        assert_inverted_in_sync()

    def test_move_to_top(self):
        """测试置顶"""
        a, b, c, d = create_todos("A", "B", "C", "D")

        assert b.move_to_top() is True
        self.session_scope.commit()

        assert todo_titles() == ["B", "A", "C", "D"]
        assert_inverted_in_sync()

    def test_move_to_bottom(self):
        """测试置底"""
        a, b, c, d = create_todos("A", "B", "C", "D")

        assert b.move_to_bottom() is True
        self.session_scope.commit()

        assert todo_titles() == ["A", "C", "D", "B"]
        assert positions_by_title(TodoItem) == {"A": 1, "B": 4, "C": 2, "D": 3}
        assert_inverted_in_sync()

    def test_move_up_and_move_down_aliases(self):
        """测试 move_up / move_down 别名"""
        a, b, c = create_todos("A", "B", "C")

        c.move_up()
        a.move_down()
        self.session_scope.commit()

        assert todo_titles() == ["C", "A", "B"]

    def test_move_to_position(self):
        """测试移动到指定位置"""
        a, b, c, d = create_todos("A", "B", "C", "D")

        assert d.move_to(2) is True
        self.session_scope.commit()
        assert todo_titles() == ["A", "D", "B", "C"]

        assert a.move_to(3) is True
        self.session_scope.commit()
        assert todo_titles() == ["D", "B", "A", "C"]
        assert_inverted_in_sync()

    def test_move_to_clamps_out_of_range(self):
        """测试超出范围的位置被截断"""
        a, b, c = create_todos("A", "B", "C")

        b.move_to(99)
        self.session_scope.commit()
        assert b.position == 3
        assert todo_titles() == ["A", "C", "B"]

        b.move_to(-5)
        self.session_scope.commit()
        assert b.position == 1
        assert todo_titles() == ["B", "A", "C"]

    def test_noop_moves_return_false(self):
        """测试无变化的移动返回 False 且不修改数据"""
        a, b, c = create_todos("A", "B", "C")

        assert a.move_higher() is False
        assert a.move_to_top() is False
        assert c.move_lower() is False
        assert c.move_to_bottom() is False
        assert b.move_to(2) is False
        self.session_scope.commit()

        assert positions_by_title(TodoItem) == {"A": 1, "B": 2, "C": 3}

    def test_round_trip_restores_order(self):
        """测试移走再移回恢复原顺序"""
        a, b, c, d = create_todos("A", "B", "C", "D")

        b.move_to(4)
        b.move_to(2)
        self.session_scope.commit()

        assert positions_by_title(TodoItem) == {"A": 1, "B": 2, "C": 3, "D": 4}
        assert_inverted_in_sync()

    def test_move_lower_then_higher_restores_order(self):
        """测试下移一位再上移一位恢复原顺序"""
        a, b, c, d = create_todos("A", "B", "C", "D")

        assert b.move_lower() is True
        assert b.position == 3
        assert c.position == 2
        assert b.move_higher() is True
        self.session_scope.commit()

        assert positions_by_title(TodoItem) == {"A": 1, "B": 2, "C": 3, "D": 4}
        assert_inverted_in_sync()

    def test_consecutive_moves_keep_positions_contiguous(self):
        """测试多次移动后位置仍然连续"""
        items = create_todos("A", "B", "C", "D", "E")

        items[4].move_to_top()
        items[0].move_to_bottom()
        items[2].move_higher()
        items[1].move_to(3)
        self.session_scope.commit()

        positions = sorted(item.position for item in TodoItem.query.all())
        assert positions == [1, 2, 3, 4, 5]
        assert TodoItem.check_consistency().ok


# ==================== 放置策略 ====================

class TestPlacement:
    """新记录放置策略测试"""

    @pytest.fixture(autouse=True)
    def setup_db(self, session_scope):
        self.session_scope = session_scope

    def test_add_new_at_top(self):
        """测试 add_new_at=top：新记录在第 1 位，其余记录后移"""
        for title in ["A", "B", "C", "D"]:
            Headline(title=title).save(commit=True)
        before = positions_by_title(Headline)

        Headline(title="E").save(commit=True)

        after = positions_by_title(Headline)
        assert after["E"] == 1
        for title, position in before.items():
            assert after[title] == position + 1
        assert titles_in_order(Headline) == ["E", "D", "C", "B", "A"]

    def test_explicit_position_on_create(self):
        """测试新记录指定位置时插入该位置"""
        create_todos("A", "B", "C")

        TodoItem(todo_list_id=1, title="X", position=2).save(commit=True)

        assert todo_titles() == ["A", "X", "B", "C"]
        assert_inverted_in_sync()

    def test_explicit_position_is_clamped(self):
        """测试新记录的显式位置被截断到 [top, 底部 + 1]"""
        create_todos("A", "B")

        TodoItem(todo_list_id=1, title="LOW", position=0).save(commit=True)
        TodoItem(todo_list_id=1, title="HIGH", position=100).save(commit=True)

        assert todo_titles() == ["LOW", "A", "B", "HIGH"]
        assert positions_by_title(TodoItem)["HIGH"] == 4

    def test_explicit_position_with_top_policy(self):
        """测试 add_new_at=top 时显式位置同样生效"""
        for title in ["A", "B", "C"]:
            Headline(title=title).save(commit=True)

        Headline(title="X", position=3).save(commit=True)

        assert titles_in_order(Headline) == ["C", "B", "X", "A"]

    def test_add_new_at_none_keeps_record_out_of_list(self):
        """测试 add_new_at=None 时新记录不进入列表"""
        a = Draft(title="A").save(commit=True)
        b = Draft(title="B", position=1).save(commit=True)

        assert a.position is None
        assert a.not_in_list()
        assert b.position == 1

        assert a.insert_at(1) is True
        self.session_scope.commit()
        assert titles_in_order(Draft) == ["A", "B"]

    def test_add_to_list_top_and_bottom(self):
        """测试 add_to_list_top / add_to_list_bottom"""
        a = Draft(title="A").save(commit=True)
        b = Draft(title="B").save(commit=True)
        c = Draft(title="C").save(commit=True)

        assert a.add_to_list_bottom() is True
        assert b.add_to_list_bottom() is True
        assert c.add_to_list_top() is True
        self.session_scope.commit()

        assert titles_in_order(Draft) == ["C", "A", "B"]

    def test_custom_column_and_top_of_list(self):
        """测试自定义位置列、从 0 开始编号与多列范围"""
        first = Lane(board_id=1, kind="todo", title="first").save(commit=True)
        second = Lane(board_id=1, kind="todo", title="second").save(commit=True)
        third = Lane(board_id=1, kind="todo", title="third").save(commit=True)
        other = Lane(board_id=1, kind="done", title="other").save(commit=True)

        assert [first.sort_index, second.sort_index, third.sort_index] == [0, 1, 2]
        assert other.sort_index == 0
        assert first.is_first()

        third.move_to_top()
        self.session_scope.commit()

        assert titles_in_order(Lane, {"board_id": 1, "kind": "todo"}) == ["third", "first", "second"]
        assert other.sort_index == 0

    def test_unsaved_pending_records_see_each_other(self):
        """测试未提交的新记录依次追加（保存点会先 flush）"""
        for title in ["A", "B", "C"]:
            TodoItem(todo_list_id=1, title=title).save()
        self.session_scope.commit()

        assert positions_by_title(TodoItem) == {"A": 1, "B": 2, "C": 3}


# ==================== 删除与移出 ====================

class TestRemoval:
    """删除与移出列表测试"""

    @pytest.fixture(autouse=True)
    def setup_db(self, session_scope):
        self.session_scope = session_scope

    def test_delete_closes_gap(self):
        """测试删除记录后后面的记录前移"""
        a, b, c, d = create_todos("A", "B", "C", "D")

        b.delete(commit=True)

        assert positions_by_title(TodoItem) == {"A": 1, "C": 2, "D": 3}
        assert_inverted_in_sync()

    def test_delete_record_not_in_list(self):
        """测试删除不在列表中的记录不影响其他记录"""
        a, b, c = create_todos("A", "B", "C")
        b.remove_from_list()
        self.session_scope.commit()

        b.delete(commit=True)

        assert positions_by_title(TodoItem) == {"A": 1, "C": 2}

    def test_remove_from_list(self):
        """测试移出列表"""
        a, b, c, d = create_todos("A", "B", "C", "D")

        assert b.remove_from_list() is True
        self.session_scope.commit()

        assert b.position is None
        assert b.inverted_position is None
        assert b.not_in_list()
        assert todo_titles() == ["A", "C", "D"]
        assert positions_by_title(TodoItem)["D"] == 3

        assert b.remove_from_list() is False
        assert b.move_higher() is False
        assert b.move_lower() is False
        assert b.move_to_top() is False

    def test_insert_removed_record_back(self):
        """测试把移出的记录重新插入"""
        a, b, c = create_todos("A", "B", "C")
        c.remove_from_list()

        assert c.insert_at(1) is True
        self.session_scope.commit()

        assert todo_titles() == ["C", "A", "B"]
        assert_inverted_in_sync()

    def test_move_to_on_removed_record_inserts(self):
        """测试对不在列表中的记录调用 move_to 等同于插入"""
        a, b, c = create_todos("A", "B", "C")
        a.remove_from_list()

        assert a.move_to(2) is True
        self.session_scope.commit()

        assert todo_titles() == ["B", "A", "C"]


# ==================== 通过保存修改位置 ====================

class TestSaveDrivenChanges:
    """直接修改位置与范围后保存的测试"""

    @pytest.fixture(autouse=True)
    def setup_db(self, session_scope):
        self.session_scope = session_scope

    def test_assign_position_and_save(self):
        """测试直接修改位置后保存等同于 move_to"""
        a, b, c, d = create_todos("A", "B", "C", "D")

        d.position = 1
        d.save(commit=True)

        assert todo_titles() == ["D", "A", "B", "C"]
        assert_inverted_in_sync()

    def test_update_position(self):
        """测试 update(position=...)"""
        a, b, c = create_todos("A", "B", "C")

        a.update(position=3, commit=True)

        assert todo_titles() == ["B", "C", "A"]

    def test_assign_none_removes_from_list(self):
        """测试把位置置空后保存会移出列表"""
        a, b, c = create_todos("A", "B", "C")

        a.position = None
        a.save(commit=True)

        assert a.position is None
        assert positions_by_title(TodoItem) == {"A": None, "B": 1, "C": 2}
        assert_inverted_in_sync()

    def test_save_without_list_changes(self):
        """测试只修改其他字段时位置不变"""
        a, b, c = create_todos("A", "B", "C")

        b.title = "B2"
        b.save(commit=True)

        assert todo_titles() == ["A", "B2", "C"]

    def test_scope_change_moves_record_to_new_list(self):
        """测试范围变更：原列表收紧，新列表追加到底部"""
        a, b, c, d = create_todos("A", "B", "C", "D", todo_list_id=1)
        create_todos("X", "Y", todo_list_id=2)

        b.todo_list_id = 2
        b.save(commit=True)

        assert todo_titles(1) == ["A", "C", "D"]
        assert todo_titles(2) == ["X", "Y", "B"]
        assert positions_by_title(TodoItem, todo_list_id=1) == {"A": 1, "C": 2, "D": 3}
        assert b.position == 3
        assert_inverted_in_sync()

    def test_scope_change_with_position(self):
        """测试同时修改范围与位置"""
        a, b, c = create_todos("A", "B", "C", todo_list_id=1)
        create_todos("X", "Y", todo_list_id=2)

        b.update(todo_list_id=2, position=1, commit=True)

        assert todo_titles(1) == ["A", "C"]
        assert todo_titles(2) == ["B", "X", "Y"]
        assert_inverted_in_sync()

    def test_scope_change_with_multi_column_scope(self):
        """测试多列范围中只修改一列"""
        first = Lane(board_id=1, kind="todo", title="first").save(commit=True)
        moved = Lane(board_id=1, kind="todo", title="moved").save(commit=True)
        Lane(board_id=2, kind="todo", title="other").save(commit=True)

        moved.board_id = 2
        moved.save(commit=True)

        assert moved.sort_index == 1
        assert first.sort_index == 0


# ==================== 反向位置 ====================

class TestInvertedPosition:
    """反向位置测试"""

    @pytest.fixture(autouse=True)
    def setup_db(self, session_scope):
        self.session_scope = session_scope

    def test_has_inverted_position(self):
        """测试 has_inverted_position"""
        assert TodoItem(title="x").has_inverted_position is True
        assert Headline(title="x").has_inverted_position is False

    def test_inverted_order_is_reverse_order(self):
        """测试按反向位置升序排列得到倒序列表"""
        create_todos("A", "B", "C")
        TodoItem(todo_list_id=1, title="X", position=2).save(commit=True)

        rows = TodoItem.query.order_by(TodoItem.inverted_position.asc()).all()

        assert [row.title for row in rows] == ["C", "B", "X", "A"]
        assert [row.title for row in TodoItem.get_list({"todo_list_id": 1}, desc=True)] == \
            ["C", "B", "X", "A"]


# ==================== 范围 ====================

class TestScope:
    """范围隔离测试"""

    @pytest.fixture(autouse=True)
    def setup_db(self, session_scope):
        self.session_scope = session_scope

    def test_lists_are_isolated(self):
        """测试不同范围的列表互不影响"""
        a, b, c = create_todos("A", "B", "C", todo_list_id=1)
        create_todos("X", "Y", "Z", todo_list_id=2)

        c.move_to_top()
        a.delete(commit=True)

        assert todo_titles(1) == ["C", "B"]
        assert positions_by_title(TodoItem, todo_list_id=2) == {"X": 1, "Y": 2, "Z": 3}

    def test_null_scope_records_are_singletons(self):
        """测试范围列为 NULL 的记录各自成为一个列表"""
        first = TodoItem(todo_list_id=None, title="N1").save(commit=True)
        second = TodoItem(todo_list_id=None, title="N2").save(commit=True)

        assert first.position == 1
        assert second.position == 1
        assert first.move_lower() is False
        assert second.move_to_bottom() is False
        assert first.lower_items() == []

    def test_swap_with(self):
        """测试交换位置"""
        a, b, c = create_todos("A", "B", "C")

        assert a.swap_with(c) is True
        self.session_scope.commit()

        assert todo_titles() == ["C", "B", "A"]
        assert_inverted_in_sync()

    def test_swap_with_self_is_noop(self):
        """测试与自身交换返回 False"""
        a, b = create_todos("A", "B")

        assert a.swap_with(a) is False

    def test_swap_across_scopes_raises(self):
        """测试跨范围交换抛出 ListScopeError"""
        a, = create_todos("A", todo_list_id=1)
        x, = create_todos("X", todo_list_id=2)

        with pytest.raises(ListScopeError) as exc_info:
            a.swap_with(x)

        assert exc_info.value.code == ErrorCode.SCOPE_MISMATCH
        assert a.position == 1
        assert x.position == 1

    def test_swap_across_models_raises(self):
        """测试与其他模型的记录交换抛出 ListScopeError"""
        a, = create_todos("A")
        headline = Headline(title="H").save(commit=True)

        with pytest.raises(ListScopeError):
            a.swap_with(headline)


# ==================== 相关性过滤 ====================

class TestRelevance:
    """相关性过滤测试"""

    @pytest.fixture(autouse=True)
    def setup_db(self, session_scope):
        self.session_scope = session_scope

    def test_irrelevant_record_goes_to_full_bottom(self):
        """测试不相关的记录追加到完整列表底部，且不参与排序"""
        a = Task(title="A", active=True).save(commit=True)
        b = Task(title="B", active=True).save(commit=True)
        c = Task(title="C", active=False, position=1).save(commit=True)

        assert c.position == 3
        assert c.is_relevant() is False
        assert titles_in_order(Task) == ["A", "B"]

    def test_moves_on_irrelevant_record_are_noops(self):
        """测试对不相关记录的移动不做任何修改"""
        a = Task(title="A", active=True).save(commit=True)
        c = Task(title="C", active=False).save(commit=True)

        assert c.move_to_top() is False
        assert c.move_to(1) is False
        assert c.move_to_bottom() is False
        self.session_scope.commit()

        assert positions_by_title(Task) == {"A": 1, "C": 2}

    def test_shifts_skip_irrelevant_records(self):
        """测试位移只作用于相关记录"""
        a = Task(title="A", active=True).save(commit=True)
        b = Task(title="B", active=True).save(commit=True)
        c = Task(title="C", active=False).save(commit=True)

        a.move_to_bottom()
        self.session_scope.commit()

        assert positions_by_title(Task) == {"A": 2, "B": 1, "C": 3}

    def test_delete_irrelevant_record_does_not_shift(self):
        """测试删除不相关记录不位移其他记录"""
        a = Task(title="A", active=True).save(commit=True)
        c = Task(title="C", active=False).save(commit=True)
        d = Task(title="D", active=True).save(commit=True)

        c.delete(commit=True)

        assert positions_by_title(Task) == {"A": 1, "D": 3}


# ==================== 查询方法 ====================

class TestQueries:
    """查询方法测试"""

    @pytest.fixture(autouse=True)
    def setup_db(self, session_scope):
        self.session_scope = session_scope

    def test_higher_and_lower_items(self):
        """测试 higher_items / lower_items"""
        a, b, c, d = create_todos("A", "B", "C", "D")

        assert [item.title for item in c.higher_items()] == ["B", "A"]
        assert [item.title for item in b.lower_items()] == ["C", "D"]
        assert [item.title for item in b.lower_items(limit=1)] == ["C"]
        assert c.higher_item() is b
        assert c.lower_item() is d
        assert a.higher_item() is None
        assert d.lower_item() is None

    def test_first_and_last(self):
        """测试 first_item / last_item / is_first / is_last"""
        a, b, c = create_todos("A", "B", "C")

        assert b.first_item() is a
        assert b.last_item() is c
        assert a.is_first() and not a.is_last()
        assert c.is_last() and not c.is_first()
        assert not b.is_first() and not b.is_last()

    def test_bottom_position_in_list(self):
        """测试 bottom_position_in_list"""
        a, b, c = create_todos("A", "B", "C")

        assert a.bottom_position_in_list() == 3
        assert a.bottom_position_in_list(except_record=c) == 2
        assert a.current_position() == 1
        assert a.in_list()

    def test_empty_list_bottom(self):
        """测试空列表的底部位置为 top - 1"""
        draft = Draft(title="A").save(commit=True)

        assert draft.bottom_position_in_list() == 0

    def test_get_list_desc(self):
        """测试倒序获取列表"""
        create_todos("A", "B", "C")

        assert [item.title for item in TodoItem.get_list({"todo_list_id": 1}, desc=True)] == \
            ["C", "B", "A"]


# ==================== 位移原语 ====================

class TestShiftPrimitives:
    """位移原语测试"""

    @pytest.fixture(autouse=True)
    def setup_db(self, session_scope):
        self.session_scope = session_scope

    def test_increment_and_decrement_lower_items(self):
        """测试 increment/decrement_positions_on_lower_items"""
        a, b, c, d = create_todos("A", "B", "C", "D")

        assert a.increment_positions_on_lower_items(2) == 3
        self.session_scope.commit()
        assert positions_by_title(TodoItem) == {"A": 1, "B": 3, "C": 4, "D": 5}
        assert_inverted_in_sync()

        assert a.decrement_positions_on_lower_items(2) == 3
        self.session_scope.commit()
        assert positions_by_title(TodoItem) == {"A": 1, "B": 2, "C": 3, "D": 4}

    def test_higher_items_primitives(self):
        """测试 increment_positions_on_higher_items / decrement_positions_on_higher_items"""
        a, b, c = create_todos("A", "B", "C")

        assert c.increment_positions_on_higher_items() == 2
        self.session_scope.commit()
        assert positions_by_title(TodoItem) == {"A": 2, "B": 3, "C": 3}

        assert c.decrement_positions_on_higher_items(3) == 2
        self.session_scope.commit()
        assert positions_by_title(TodoItem) == {"A": 1, "B": 2, "C": 3}

    def test_increment_all_items(self):
        """测试 increment_positions_on_all_items"""
        a, b, c = create_todos("A", "B", "C")

        assert a.increment_positions_on_all_items() == 2
        self.session_scope.commit()

        assert positions_by_title(TodoItem) == {"A": 1, "B": 3, "C": 4}


# ==================== 未保存的修改 ====================

class TestUnsavedChanges:
    """移动方法遇到尚未保存的位置 / 范围修改时的处理"""

    @pytest.fixture(autouse=True)
    def setup_db(self, session_scope):
        self.session_scope = session_scope

    def test_unsaved_position_is_applied_before_move(self):
        """测试未保存的位置先生效，再执行下移"""
        a, b, c, d = create_todos("A", "B", "C", "D")

        c.position = 1
        assert c.move_lower() is True
        self.session_scope.commit()

        assert todo_titles() == ["A", "C", "B", "D"]
        assert positions_by_title(TodoItem) == {"A": 1, "B": 3, "C": 2, "D": 4}
        assert TodoItem.check_consistency().ok
        assert_inverted_in_sync()

    def test_unsaved_position_with_move_to_top(self):
        """测试未保存的位置不会直接落库"""
        a, b, c, d = create_todos("A", "B", "C", "D")

        b.position = 4
        assert b.move_to_top() is True
        self.session_scope.commit()

        assert todo_titles() == ["B", "A", "C", "D"]
        assert TodoItem.check_consistency().ok

    def test_unsaved_removal_then_insert(self):
        """测试未保存的移出列表先生效，再插入到指定位置"""
        a, b, c, d = create_todos("A", "B", "C", "D")

        a.position = None
        assert a.insert_at(3) is True
        self.session_scope.commit()

        assert todo_titles() == ["B", "C", "A", "D"]
        assert TodoItem.check_consistency().ok

    def test_unsaved_scope_change_is_applied_before_move(self):
        """测试未保存的范围变更先生效，再在新列表中上移"""
        a, b, c = create_todos("A", "B", "C", todo_list_id=1)
        x, = create_todos("X", todo_list_id=2)

        c.todo_list_id = 2
        assert c.move_higher() is True
        self.session_scope.commit()

        assert todo_titles(1) == ["A", "B"]
        assert todo_titles(2) == ["C", "X"]
        assert TodoItem.check_consistency().ok
        assert_inverted_in_sync()

    def test_swap_with_unsaved_position(self):
        """测试交换前先应用双方未保存的位置"""
        a, b, c, d = create_todos("A", "B", "C", "D")

        d.position = 1
        assert d.swap_with(c) is True
        self.session_scope.commit()

        assert todo_titles() == ["C", "A", "B", "D"]
        assert TodoItem.check_consistency().ok

    def test_move_after_save_without_flush(self):
        """测试 save() 之后尚未 flush 的记录可以直接移动"""
        create_todos("A", "B", "C")

        d = TodoItem(todo_list_id=1, title="D").save()
        assert d.move_to_top() is True
        self.session_scope.commit()

        assert todo_titles() == ["D", "A", "B", "C"]
        assert TodoItem.check_consistency().ok


# ==================== 范围锁 ====================

class TestScopeLocking:
    """同一范围上的操作先加锁再读取边界"""

    @pytest.fixture(autouse=True)
    def setup_db(self, session_scope):
        self.session_scope = session_scope

    def spy_on_resolver(self, monkeypatch):
        calls = []
        original_lock = ScopeResolver.lock
        original_bottom = ScopeResolver._bottom

        def lock(resolver, record):
            calls.append(("lock", dict(resolver.scope_values(record))))
            return original_lock(resolver, record)

        def bottom(resolver, record, except_record, relevant_only):
            calls.append(("bottom", dict(resolver.scope_values(record))))
            return original_bottom(resolver, record, except_record, relevant_only)

        monkeypatch.setattr(ScopeResolver, "lock", lock)
        monkeypatch.setattr(ScopeResolver, "_bottom", bottom)
        return calls

    def test_lock_precedes_bounds_read(self, monkeypatch):
        """测试移动时先锁定范围再读取底部位置"""
        a, b, c = create_todos("A", "B", "C")
        calls = self.spy_on_resolver(monkeypatch)

        assert a.move_to_bottom() is True

        assert calls[0] == ("lock", {"todo_list_id": 1})
        assert ("bottom", {"todo_list_id": 1}) in calls

    def test_create_locks_scope(self, monkeypatch):
        """测试新记录放置前锁定目标范围"""
        create_todos("A", "B")
        calls = self.spy_on_resolver(monkeypatch)

        TodoItem(todo_list_id=1, title="C").save(commit=True)

        assert calls[0] == ("lock", {"todo_list_id": 1})
        assert todo_titles() == ["A", "B", "C"]

    def test_scope_change_locks_both_scopes(self, monkeypatch):
        """测试范围变更时依次锁定原范围和新范围"""
        a, b = create_todos("A", "B", todo_list_id=1)
        create_todos("X", todo_list_id=2)
        calls = self.spy_on_resolver(monkeypatch)

        b.update(todo_list_id=2, commit=True)

        locks = [values for name, values in calls if name == "lock"]
        assert locks == [{"todo_list_id": 1}, {"todo_list_id": 2}]
        assert todo_titles(2) == ["X", "B"]

    def test_stale_position_is_reloaded_under_lock(self):
        """测试加锁后按数据库中的最新位置移动（其他连接已调整过顺序）"""
        a, b, c = create_todos("A", "B", "C")
        ids = {item.title: item.id for item in (a, b, c)}
        assert c.position == 3

        # 绕过 session 同步，模拟另一个事务已提交的调整：C, A, B
        for title, position in (("C", 1), ("A", 2), ("B", 3)):
            self.session_scope.execute(
                update(TodoItem)
                .where(TodoItem.id == ids[title])
                .values(position=position, inverted_position=-position)
                .execution_options(synchronize_session=False)
            )

        assert c.move_lower() is True
        self.session_scope.commit()

        assert todo_titles() == ["A", "C", "B"]
        assert TodoItem.check_consistency().ok

    def test_normalize_reads_latest_positions(self):
        """测试重新编号时按数据库中的最新位置判断是否需要改写"""
        a, b, c = create_todos("A", "B", "C")
        assert (a.position, b.position) == (1, 2)

        for item, position in ((a, 2), (b, 1)):
            self.session_scope.execute(
                update(TodoItem)
                .where(TodoItem.id == item.id)
                .values(position=position, inverted_position=-position)
                .execution_options(synchronize_session=False)
            )

        assert TodoItem.normalize_positions({"todo_list_id": 1}) == 0
        self.session_scope.commit()

        assert todo_titles() == ["B", "A", "C"]


# ==================== 错误处理 ====================

class TestErrors:
    """错误处理与回滚测试"""

    @pytest.fixture(autouse=True)
    def setup_db(self, session_scope):
        self.session_scope = session_scope

    def test_operations_require_persisted_record(self):
        """测试对未保存的记录调用移动方法抛出异常"""
        item = TodoItem(todo_list_id=1, title="unsaved")

        with pytest.raises(ListException) as exc_info:
            item.move_to_top()

        assert exc_info.value.code == ErrorCode.RECORD_NOT_PERSISTED

    def test_detached_record_raises(self):
        """测试已分离的记录调用移动方法抛出异常"""
        a, = create_todos("A")
        self.session_scope.expunge(a)

        with pytest.raises(ListException) as exc_info:
            a.move_to_bottom()

        assert exc_info.value.code == ErrorCode.RECORD_NOT_PERSISTED

    def test_failed_operation_rolls_back(self, monkeypatch, caplog):
        """测试操作失败时回滚保存点并原样抛出异常"""
        a, b, c = create_todos("A", "B", "C")

        def broken_shift(self, delta, lower=None, upper=None):
            raise RuntimeError("shift failed")

        monkeypatch.setattr(OrderedListMixin, "_shift_positions", broken_shift)

        with pytest.raises(RuntimeError, match="shift failed"):
            c.move_to_top()

        assert "move_to_top 失败，已回滚" in caplog.text

        monkeypatch.undo()
        self.session_scope.commit()

        assert c.position == 3
        assert positions_by_title(TodoItem) == {"A": 1, "B": 2, "C": 3}

    def test_failed_create_restores_record(self, monkeypatch):
        """测试新记录放置失败时不留下半成品"""
        create_todos("A", "B")

        def broken_shift(self, delta, lower=None, upper=None):
            raise RuntimeError("shift failed")

        monkeypatch.setattr(OrderedListMixin, "_shift_positions", broken_shift)

        item = TodoItem(todo_list_id=1, title="X", position=1)
        with pytest.raises(RuntimeError):
            item.save(commit=True)

        monkeypatch.undo()
        self.session_scope.rollback()

        assert item.position == 1
        assert positions_by_title(TodoItem) == {"A": 1, "B": 2}
