# Tests for the Task Transition Controller
# complete_with_check, reject_task and complete_task_by_name

from datetime import date, datetime, time
from decimal import Decimal

import pytest

from approvalflow.core import InstanceNavigator, TaskResolver, TaskTransitionController
from approvalflow.engine.queries import HistoricTaskQuery, HistoricVariableQuery, InstanceQuery
from approvalflow.errors import (
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
)


@pytest.fixture
def travel_instance(engine, travel_form):
    """A travel instance waiting at 部门经理审批 (candidates ZhangSan, Jack)."""
    return InstanceNavigator(engine).start_and_advance(
        "travel_apply", 1001, {"form": travel_form}
    )


def _task_variables(engine, task_id):
    return {
        v.name: v.value
        for v in engine.query_historic_variables(HistoricVariableQuery(task_id=task_id))
    }


class TestCompleteWithCheck:
    """Tests for the authorized completion path."""

    def test_candidate_completes(self, engine, travel_instance):
        transitions = TaskTransitionController(engine)
        task = TaskResolver(engine).last_task(travel_instance.id)

        transitions.complete_with_check("Jack", task.id, {"opinion": "同意"})

        historic = engine.query_historic_tasks(HistoricTaskQuery(task_id=task.id))[0]
        assert historic.assignee == "Jack"
        assert historic.claimed_at is not None
        assert _task_variables(engine, task.id) == {"opinion": "同意"}

        next_task = TaskResolver(engine).last_task(travel_instance.id)
        assert next_task.name == "总经理审批"
        assert next_task.assignee == "Rose"

    def test_assignee_completes_without_claim(self, engine, travel_instance):
        transitions = TaskTransitionController(engine)
        resolver = TaskResolver(engine)
        transitions.complete_with_check("Jack", resolver.last_task(travel_instance.id).id)
        rose_task = resolver.last_task(travel_instance.id)

        transitions.complete_with_check("Rose", rose_task.id)

        historic = engine.query_historic_tasks(HistoricTaskQuery(task_id=rose_task.id))[0]
        assert historic.assignee == "Rose"
        assert historic.claimed_at is None
        assert engine.query_instances(InstanceQuery(instance_id=travel_instance.id)) == []

    def test_unauthorized_user_changes_nothing(self, engine, travel_instance):
        transitions = TaskTransitionController(engine)
        task = TaskResolver(engine).last_task(travel_instance.id)

        for _ in range(2):
            with pytest.raises(UnauthorizedError) as exc_info:
                transitions.complete_with_check("Brus", task.id, {"opinion": "同意"})
            assert exc_info.value.user_id == "Brus"
            assert exc_info.value.task_id == task.id

        still_open = TaskResolver(engine).last_task(travel_instance.id)
        assert still_open.id == task.id
        assert still_open.assignee is None
        assert _task_variables(engine, task.id) == {}

    def test_empty_user(self, engine, travel_instance):
        task = TaskResolver(engine).last_task(travel_instance.id)

        with pytest.raises(InvalidArgumentError):
            TaskTransitionController(engine).complete_with_check("", task.id)

    def test_unknown_task(self, engine):
        with pytest.raises(NotFoundError):
            TaskTransitionController(engine).complete_with_check("Jack", "999")

    @pytest.mark.parametrize(
        "value",
        [
            datetime(2025, 6, 5, 11, 16),
            date(2025, 6, 5),
            time(9, 30),
            Decimal("1.50"),
            (1, "上海"),
        ],
    )
    def test_variable_values_round_trip(self, engine, travel_instance, value):
        task = TaskResolver(engine).last_task(travel_instance.id)

        TaskTransitionController(engine).complete_with_check("Jack", task.id, {"v": value})

        stored = _task_variables(engine, task.id)["v"]
        assert stored == value
        assert type(stored) is type(value)
        assert TaskResolver(engine).last_task(travel_instance.id).name == "总经理审批"

    def test_unstorable_variable_leaves_task_untouched(self, engine, travel_instance):
        task = TaskResolver(engine).last_task(travel_instance.id)

        with pytest.raises(TypeError):
            TaskTransitionController(engine).complete_with_check(
                "Jack", task.id, {"opinion": "同意", "v": object()}
            )

        still_open = TaskResolver(engine).last_task(travel_instance.id)
        assert still_open.id == task.id
        assert still_open.assignee is None
        assert _task_variables(engine, task.id) == {}


class TestRejectTask:
    """Tests for rejecting a task, which deletes its instance."""

    def test_reject_deletes_instance(self, engine, travel_instance):
        transitions = TaskTransitionController(engine)
        task = TaskResolver(engine).last_task(travel_instance.id)

        transitions.reject_task(task.id, "Jack", "审批未通过", {"opinion": "不同意", "status": 1})

        assert engine.query_instances(InstanceQuery(instance_id=travel_instance.id)) == []
        history = engine.query_historic_tasks(HistoricTaskQuery(instance_id=travel_instance.id))
        assert [h.name for h in history] == ["创建出差申请", "部门经理审批"]
        assert history[1].assignee == "Jack"
        assert history[1].delete_reason == "审批未通过"
        assert _task_variables(engine, task.id) == {"opinion": "不同意", "status": 1}

    def test_default_reason(self, engine, travel_instance):
        task = TaskResolver(engine).last_task(travel_instance.id)

        TaskTransitionController(engine).reject_task(task.id, "ZhangSan")

        historic = engine.query_historic_tasks(HistoricTaskQuery(task_id=task.id))[0]
        assert historic.delete_reason == "Rejected"

    def test_unauthorized_reject(self, engine, travel_instance):
        task = TaskResolver(engine).last_task(travel_instance.id)

        with pytest.raises(UnauthorizedError):
            TaskTransitionController(engine).reject_task(task.id, "Brus", "no")

        assert engine.query_instances(InstanceQuery(instance_id=travel_instance.id))

    def test_reject_after_instance_gone(self, engine, travel_instance, monkeypatch):
        transitions = TaskTransitionController(engine)
        task = TaskResolver(engine).last_task(travel_instance.id)
        deleted = []
        monkeypatch.setattr(engine, "query_instances", lambda query: [])
        monkeypatch.setattr(engine, "delete_instance", lambda *args: deleted.append(args))

        transitions.reject_task(task.id, "Jack", "审批未通过")

        assert deleted == []
        assert engine.tasks.get(task.id).assignee == "Jack"

    def test_reject_twice(self, engine, travel_instance):
        transitions = TaskTransitionController(engine)
        task = TaskResolver(engine).last_task(travel_instance.id)
        transitions.reject_task(task.id, "Jack", "审批未通过")

        with pytest.raises(NotFoundError):
            transitions.reject_task(task.id, "Jack", "审批未通过")

        history = engine.query_historic_tasks(HistoricTaskQuery(instance_id=travel_instance.id))
        assert len(history) == 2

    def test_partial_failure_is_raised(self, engine, travel_instance, monkeypatch):
        transitions = TaskTransitionController(engine)
        task = TaskResolver(engine).last_task(travel_instance.id)

        def fail(*args):
            raise RuntimeError("engine down")

        monkeypatch.setattr(engine, "delete_instance", fail)

        with pytest.raises(RuntimeError, match="engine down"):
            transitions.reject_task(task.id, "Jack", "审批未通过", {"opinion": "不同意"})

        # Writes made before the failure stay in place
        assert engine.tasks.get(task.id).assignee == "Jack"
        assert _task_variables(engine, task.id) == {"opinion": "不同意"}


class TestCompleteTaskByName:
    """Tests for the unchecked completion path."""

    def test_complete_by_name(self, engine, travel_instance):
        TaskTransitionController(engine).complete_task_by_name(travel_instance.id, "部门经理审批")

        assert TaskResolver(engine).last_task(travel_instance.id).name == "总经理审批"

    @pytest.mark.parametrize("name", ["总经理审批", "", None])
    def test_not_current(self, engine, travel_instance, name):
        with pytest.raises(InvalidStateError) as exc_info:
            TaskTransitionController(engine).complete_task_by_name(travel_instance.id, name)
        assert exc_info.value.instance_id == travel_instance.id
