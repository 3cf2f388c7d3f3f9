from datetime import UTC, datetime
from threading import Event

from src.taskloom.core.agent_registry import AgentProfile, AgentRegistry
from src.taskloom.core.schedule_types import IntervalSchedule
from src.taskloom.core.task_executor import TaskExecutor, render_prompt
from src.taskloom.core.task_types import ScheduledTask

NOW = datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)


def _registry() -> AgentRegistry:
    return AgentRegistry(agents=[AgentProfile(id="general", name="General Assistant", model="llama3.2")])


def _task(agent_id: str = "general", template: str = "Report for {date}") -> ScheduledTask:
    return ScheduledTask(
        id="task_1",
        name="Morning report",
        agent_id=agent_id,
        prompt_template=template,
        schedule=IntervalSchedule(minutes=5),
        enabled=True,
        created_at=NOW,
    )


class _Invoker:
    def __init__(self, response=None, exc: Exception | None = None) -> None:
        self.response = response
        self.exc = exc
        self.calls: list[tuple[str, str]] = []

    def invoke(self, agent_id: str, prompt: str):
        self.calls.append((agent_id, prompt))
        if self.exc is not None:
            raise self.exc
        return self.response


def test_render_prompt_fills_placeholders():
    out = render_prompt("{date} | {time} | {datetime} | {unknown}", NOW)
    assert out == "2024-01-02 | 03:04:05 | 2024-01-02 03:04:05 | {unknown}"


def test_render_prompt_uses_timezone():
    out = render_prompt("{datetime}", NOW, timezone_name="America/New_York")
    assert out == "2024-01-01 22:04:05"


def test_execute_success_records_response():
    invoker = _Invoker(response={"ok": True, "text": "all good"})
    executor = TaskExecutor(invoker=invoker, registry=_registry())

    result = executor.execute(_task(), now=NOW)
    assert invoker.calls == [("general", "Report for 2024-01-02")]
    assert result.success is True
    assert result.response == "all good"
    assert result.error is None
    assert result.agent_name == "General Assistant"
    assert result.task_name == "Morning report"
    assert result.prompt == "Report for 2024-01-02"
    assert result.executed_at == NOW
    assert result.duration_ms is not None and result.duration_ms >= 0


def test_execute_failure_response_becomes_error():
    invoker = _Invoker(response={"ok": False, "error": "model not loaded"})
    executor = TaskExecutor(invoker=invoker, registry=_registry())

    result = executor.execute(_task(), now=NOW)
    assert result.success is False
    assert result.response is None
    assert result.error == "model not loaded"


def test_execute_exception_becomes_error():
    executor = TaskExecutor(invoker=_Invoker(exc=ConnectionError("refused")), registry=_registry())
    result = executor.execute(_task(), now=NOW)
    assert result.success is False
    assert result.error == "refused"


def test_execute_missing_text_is_failure():
    executor = TaskExecutor(invoker=_Invoker(response={"ok": True}), registry=_registry())
    result = executor.execute(_task(), now=NOW)
    assert result.success is False
    assert "text" in (result.error or "")


def test_execute_unknown_agent_falls_back_to_id():
    invoker = _Invoker(response={"ok": False, "error": "Agent 'ghost' not found."})
    executor = TaskExecutor(invoker=invoker, registry=_registry())
    result = executor.execute(_task(agent_id="ghost"), now=NOW)
    assert result.agent_name == "ghost"
    assert result.success is False


def test_execute_times_out():
    gate = Event()

    class _SlowInvoker:
        def invoke(self, agent_id: str, prompt: str):
            gate.wait(timeout=5)
            return {"ok": True, "text": "late"}

    executor = TaskExecutor(invoker=_SlowInvoker(), registry=_registry(), timeout_sec=0.2)
    try:
        result = executor.execute(_task(), now=NOW)
    finally:
        gate.set()
    assert result.success is False
    assert "timed out" in (result.error or "")
