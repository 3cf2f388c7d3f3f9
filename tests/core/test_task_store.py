from datetime import UTC, datetime, timedelta

import pytest

from src.taskloom.core.agent_registry import AgentProfile, AgentRegistry
from src.taskloom.core.task_store import TaskStore
from src.taskloom.core.task_types import TaskNotFoundError, TaskValidationError

T0 = datetime(2024, 1, 1, 10, 0, tzinfo=UTC)


@pytest.fixture()
def store(tmp_path):
    registry = AgentRegistry(agents=[AgentProfile(id="general", name="General Assistant", model="llama3.2")])
    return TaskStore(db_path=tmp_path / "taskloom.db", agent_registry=registry)


def _create(store: TaskStore, name: str = "Digest", schedule: dict | None = None, now: datetime = T0):
    return store.create_task(
        name=name,
        agent_id="general",
        prompt_template="Summarize {date}",
        schedule=schedule or {"type": "Interval", "minutes": 5},
        now=now,
    )


def test_create_sets_initial_state(store):
    task = _create(store)
    assert task.id.startswith("task_")
    assert task.enabled is True
    assert task.created_at == T0
    assert task.last_run is None
    assert task.next_run == T0 + timedelta(minutes=5)
    assert task.run_count == 0

    stored = store.get_task(task.id)
    assert stored is not None
    assert stored.to_dict() == task.to_dict()


@pytest.mark.parametrize(
    "kwargs",
    [
        {"name": "  "},
        {"prompt_template": ""},
        {"agent_id": "unknown"},
        {"schedule": {"type": "Interval", "minutes": 0}},
        {"schedule": {"type": "Weekly", "day": 9, "at_hour": 1, "at_minute": 0}},
    ],
)
def test_create_validation_leaves_store_unchanged(store, kwargs):
    payload = {
        "name": "Digest",
        "agent_id": "general",
        "prompt_template": "hi",
        "schedule": {"type": "Interval", "minutes": 5},
    }
    payload.update(kwargs)
    with pytest.raises(TaskValidationError):
        store.create_task(**payload)
    assert store.list_tasks() == []


def test_list_is_in_creation_order(store):
    names = ["c", "a", "b"]
    for name in names:
        _create(store, name=name)
    assert [task.name for task in store.list_tasks()] == names


def test_delete_unknown_raises_and_keeps_tasks(store):
    task = _create(store)
    with pytest.raises(TaskNotFoundError):
        store.delete_task("task_missing")
    assert [t.id for t in store.list_tasks()] == [task.id]


def test_delete_removes_task(store):
    task = _create(store)
    store.delete_task(task.id)
    assert store.get_task(task.id) is None


def test_toggle_unknown_raises(store):
    with pytest.raises(TaskNotFoundError):
        store.toggle_task("task_missing", False)


def test_reenable_recomputes_from_now_without_backlog(store):
    task = _create(store)
    disabled = store.toggle_task(task.id, False, now=T0)
    assert disabled.enabled is False
    assert disabled.next_run is None

    later = T0 + timedelta(days=10)
    enabled = store.toggle_task(task.id, True, now=later)
    assert enabled.next_run == later + timedelta(minutes=5)

    check_at = later + timedelta(minutes=6)
    due = store.list_due_tasks(now=check_at)
    assert [t.id for t in due] == [task.id]

    store.record_execution(task.id, check_at)
    assert store.list_due_tasks(now=check_at) == []


def test_toggle_same_state_is_noop(store):
    task = _create(store)
    again = store.toggle_task(task.id, True, now=T0 + timedelta(hours=1))
    assert again.next_run == task.next_run


def test_record_execution_updates_fields(store):
    task = _create(store, schedule={"type": "Daily", "at_hour": 9, "at_minute": 0})
    executed_at = datetime(2024, 1, 2, 9, 0, 4, tzinfo=UTC)
    updated = store.record_execution(task.id, executed_at)
    assert updated is not None
    assert updated.last_run == executed_at
    assert updated.run_count == 1
    assert updated.next_run == datetime(2024, 1, 3, 9, 0, tzinfo=UTC)


def test_record_execution_after_delete_is_noop(store):
    task = _create(store)
    store.delete_task(task.id)
    assert store.record_execution(task.id, T0) is None
    assert store.list_tasks() == []


def test_record_execution_while_disabled_keeps_next_run_clear(store):
    task = _create(store)
    store.toggle_task(task.id, False, now=T0)
    updated = store.record_execution(task.id, T0 + timedelta(minutes=1))
    assert updated is not None
    assert updated.run_count == 1
    assert updated.next_run is None


def test_due_tasks_skip_disabled_and_future(store):
    due_task = _create(store, name="due")
    future_task = _create(store, name="future", schedule={"type": "Interval", "minutes": 60})
    disabled_task = _create(store, name="disabled")
    store.toggle_task(disabled_task.id, False, now=T0)

    due = store.list_due_tasks(now=T0 + timedelta(minutes=5))
    assert [t.id for t in due] == [due_task.id]
    assert future_task.id not in {t.id for t in due}


def test_counts(store):
    a = _create(store)
    _create(store)
    store.toggle_task(a.id, False, now=T0)
    assert store.count_tasks() == {"total": 2, "enabled": 1, "disabled": 1}


def test_tasks_persist_across_instances(tmp_path):
    registry = AgentRegistry(agents=[AgentProfile(id="general", name="General", model="llama3.2")])
    first = TaskStore(db_path=tmp_path / "taskloom.db", agent_registry=registry)
    task = _create(first)
    second = TaskStore(db_path=tmp_path / "taskloom.db", agent_registry=registry)
    assert [t.id for t in second.list_tasks()] == [task.id]
