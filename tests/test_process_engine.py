# Tests for the reference ProcessEngine
# Covers token movement, queries, variables, deletion and persistence

import pytest

from approvalflow.engine import ProcessEngine
from approvalflow.engine.queries import (
    HistoricInstanceQuery,
    HistoricTaskQuery,
    HistoricVariableQuery,
    InstanceQuery,
    SortOrder,
    TaskQuery,
)
from approvalflow.errors import NotFoundError


def _open_tasks(engine, instance_id):
    return engine.query_tasks(TaskQuery(instance_id=instance_id))


class TestStartInstance:
    """Tests for starting instances."""

    def test_start_reaches_first_user_task(self, engine, travel_form):
        instance = engine.start_instance("travel_apply", "1001", {"form": travel_form})

        assert instance.definition_key == "travel_apply"
        assert instance.definition_id == "travel_apply:1"
        assert instance.business_key == "1001"

        tasks = _open_tasks(engine, instance.id)
        assert len(tasks) == 1
        assert tasks[0].name == "创建出差申请"
        assert tasks[0].assignee == "ZhangSan"
        assert tasks[0].definition_key == "travel_apply"

    def test_unresolved_assignee_expression(self, engine):
        instance = engine.start_instance("travel_apply")

        assert _open_tasks(engine, instance.id)[0].assignee is None

    def test_unknown_definition(self, engine):
        with pytest.raises(NotFoundError) as exc_info:
            engine.start_instance("no_such_process")
        assert exc_info.value.entity == "definition"

    def test_parallel_branches(self, engine):
        instance = engine.start_instance("contract_review", variables={"reviewers": ["Ann", "Amy"]})

        tasks = _open_tasks(engine, instance.id)
        assert [task.activity_id for task in tasks] == ["reviewA", "reviewB"]
        links = engine.query_identity_links(tasks[0].id)
        assert [link.user_id for link in links] == ["Ann", "Amy"]
        assert tasks[1].assignee == "Ben"

    def test_instance_ends_after_last_branch(self, engine):
        instance = engine.start_instance("contract_review", variables={"reviewers": "Ann"})
        first, second = _open_tasks(engine, instance.id)

        engine.complete(first.id)
        assert engine.query_instances(InstanceQuery(instance_id=instance.id))

        engine.complete(second.id)
        assert engine.query_instances(InstanceQuery(instance_id=instance.id)) == []

        historic = engine.query_historic_instances(HistoricInstanceQuery(finished=True))
        assert [item.id for item in historic] == [instance.id]
        assert historic[0].delete_reason is None


class TestComplete:
    """Tests for completing tasks."""

    def test_complete_moves_token(self, engine, travel_form):
        instance = engine.start_instance("travel_apply", variables={"form": travel_form})
        task = _open_tasks(engine, instance.id)[0]

        engine.complete(task.id)

        tasks = _open_tasks(engine, instance.id)
        assert [t.name for t in tasks] == ["部门经理审批"]
        assert tasks[0].assignee is None
        links = engine.query_identity_links(tasks[0].id)
        assert [(link.type, link.user_id) for link in links] == [
            ("candidate", "ZhangSan"),
            ("candidate", "Jack"),
        ]

    def test_pass_through_task(self, engine):
        instance = engine.start_instance("leave_apply")
        for _ in range(2):
            engine.complete(_open_tasks(engine, instance.id)[0].id)

        assert [t.name for t in _open_tasks(engine, instance.id)] == ["人事备案"]

    def test_complete_unknown_task(self, engine):
        with pytest.raises(NotFoundError):
            engine.complete("999")

    def test_complete_twice(self, engine):
        instance = engine.start_instance("leave_apply")
        task = _open_tasks(engine, instance.id)[0]
        engine.complete(task.id)

        with pytest.raises(NotFoundError):
            engine.complete(task.id)

    def test_instance_variables(self, engine, travel_form):
        instance = engine.start_instance("travel_apply", variables={"form": travel_form})
        task = _open_tasks(engine, instance.id)[0]

        engine.complete(task.id, {"approved": True})

        assert engine.instances.get_variables(instance.id) == {
            "form": travel_form,
            "approved": True,
        }
        historic = engine.query_historic_variables(HistoricVariableQuery(instance_id=instance.id))
        assert {v.name for v in historic} == {"form", "approved"}
        assert all(v.task_id is None for v in historic)

    def test_local_variables(self, engine, travel_form):
        instance = engine.start_instance("travel_apply", variables={"form": travel_form})
        task = _open_tasks(engine, instance.id)[0]

        engine.complete(task.id, {"opinion": "同意"}, local_scope=True)

        assert "opinion" not in engine.instances.get_variables(instance.id)
        historic = engine.query_historic_variables(HistoricVariableQuery(task_id=task.id))
        assert [(v.name, v.value) for v in historic] == [("opinion", "同意")]

    def test_unstorable_variable_writes_nothing(self, engine, travel_form):
        instance = engine.start_instance("travel_apply", variables={"form": travel_form})
        task = _open_tasks(engine, instance.id)[0]

        with pytest.raises(TypeError):
            engine.complete(task.id, {"approved": True, "raw": object()})

        assert _open_tasks(engine, instance.id)[0].id == task.id
        assert "approved" not in engine.instances.get_variables(instance.id)
        historic = engine.query_historic_variables(HistoricVariableQuery(instance_id=instance.id))
        assert {v.name for v in historic} == {"form"}

    @pytest.mark.parametrize(
        "value",
        [1, 2.5, True, "不同意", None, {"days": 6, "cities": ["上海"]}, [1, 2], (1, 2)],
    )
    def test_variable_types(self, engine, value):
        instance = engine.start_instance("leave_apply")
        task = _open_tasks(engine, instance.id)[0]

        engine.set_local_variables(task.id, {"value": value})

        historic = engine.query_historic_variables(HistoricVariableQuery(task_id=task.id))
        assert historic[0].value == value
        assert type(historic[0].value) is type(value)


class TestClaim:
    """Tests for claiming tasks."""

    def test_claim_sets_assignee(self, engine):
        instance = engine.start_instance("leave_apply")
        task = _open_tasks(engine, instance.id)[0]

        engine.claim(task.id, "Jerry")

        claimed = _open_tasks(engine, instance.id)[0]
        assert claimed.assignee == "Jerry"
        assert claimed.claimed_at is not None

    def test_claim_replaces_assignee(self, engine, travel_form):
        instance = engine.start_instance("travel_apply", variables={"form": travel_form})
        task = _open_tasks(engine, instance.id)[0]

        engine.claim(task.id, "Jack")

        assert _open_tasks(engine, instance.id)[0].assignee == "Jack"

    def test_claim_unknown_task(self, engine):
        with pytest.raises(NotFoundError):
            engine.claim("999", "Jack")


class TestDeleteInstance:
    """Tests for deleting running instances."""

    def test_delete_moves_tasks_to_history(self, engine, travel_form):
        instance = engine.start_instance("travel_apply", variables={"form": travel_form})
        task = _open_tasks(engine, instance.id)[0]

        engine.delete_instance(instance.id, "撤回")

        assert engine.query_instances(InstanceQuery(instance_id=instance.id)) == []
        assert _open_tasks(engine, instance.id) == []
        historic = engine.query_historic_tasks(HistoricTaskQuery(task_id=task.id))
        assert historic[0].delete_reason == "撤回"
        historic_instance = engine.query_historic_instances(HistoricInstanceQuery())[0]
        assert historic_instance.delete_reason == "撤回"
        assert historic_instance.ended_at is not None

    def test_delete_unknown_instance(self, engine):
        with pytest.raises(NotFoundError) as exc_info:
            engine.delete_instance("999", "gone")
        assert exc_info.value.entity == "instance"


class TestQueries:
    """Tests for query ordering and filters."""

    def test_instance_order(self, engine):
        ids = [engine.start_instance("leave_apply").id for _ in range(5)]

        ascending = engine.query_instances(InstanceQuery(definition_key="leave_apply"))
        descending = engine.query_instances(
            InstanceQuery(definition_key="leave_apply", order_by_id=SortOrder.DESC)
        )

        assert [i.id for i in ascending] == ids
        assert [i.id for i in descending] == list(reversed(ids))

    def test_instance_ids_filter(self, engine):
        first = engine.start_instance("leave_apply")
        engine.start_instance("leave_apply")

        found = engine.query_instances(InstanceQuery(instance_ids=[first.id, "999"]))
        assert [i.id for i in found] == [first.id]

    def test_task_create_time_order(self, engine):
        instance = engine.start_instance("contract_review", variables={"reviewers": "Ann"})

        descending = engine.query_tasks(
            TaskQuery(instance_id=instance.id, order_by_create_time=SortOrder.DESC)
        )
        assert [t.activity_id for t in descending] == ["reviewB", "reviewA"]

    def test_candidate_or_assigned(self, engine):
        instance = engine.start_instance("contract_review", variables={"reviewers": "Ann,Ben"})

        ben_tasks = engine.query_tasks(TaskQuery(candidate_or_assigned="Ben"))
        assert [t.activity_id for t in ben_tasks] == ["reviewA", "reviewB"]
        assert engine.query_tasks(TaskQuery(candidate_or_assigned="Zed")) == []
        assert engine.query_tasks(TaskQuery(instance_id=instance.id, name="财务评审"))[0].assignee == "Ben"

    def test_historic_instances_involved_user(self, engine, travel_form):
        instance = engine.start_instance("travel_apply", variables={"form": travel_form})
        engine.start_instance("leave_apply")
        engine.complete(_open_tasks(engine, instance.id)[0].id)

        involved = engine.query_historic_instances(HistoricInstanceQuery(involved_user="ZhangSan"))
        assert [i.id for i in involved] == [instance.id]

        running = engine.query_historic_instances(HistoricInstanceQuery(finished=False))
        assert len(running) == 2


class TestPersistence:
    """State survives a restart of the engine."""

    def test_reload_continues(self, engine, travel_form):
        instance = engine.start_instance("travel_apply", "1001", {"form": travel_form})
        engine.complete(_open_tasks(engine, instance.id)[0].id, {"days": 3})

        reloaded = ProcessEngine(engine.storage_path)

        tasks = _open_tasks(reloaded, instance.id)
        assert [t.name for t in tasks] == ["部门经理审批"]
        assert reloaded.instances.get_variables(instance.id)["days"] == 3
        assert len(reloaded.query_historic_tasks(HistoricTaskQuery(instance_id=instance.id))) == 1

        next_instance = reloaded.start_instance("leave_apply")
        assert int(next_instance.id) > int(tasks[0].id)

    def test_in_memory_engine(self):
        engine = ProcessEngine()
        assert engine.get_stats()["total_triples"] == 0
        assert engine.storage_path is None
