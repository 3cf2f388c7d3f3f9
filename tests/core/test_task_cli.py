from __future__ import annotations

import json

import pytest

from src.taskloom.core.agent_registry import AgentProfile, AgentRegistry
from src.taskloom.core.scheduler_service import SchedulerService, SchedulerSettings
from src.taskloom.daemon import task_cli


class _EchoInvoker:
    def invoke(self, agent_id: str, prompt: str):
        return {"ok": True, "text": f"{agent_id}:{prompt}"}


@pytest.fixture()
def service(tmp_path) -> SchedulerService:
    return SchedulerService(
        settings=SchedulerSettings(db_path=str(tmp_path / "taskloom.db")),
        registry=AgentRegistry(agents=[AgentProfile(id="general", name="General Assistant", model="llama3.2")]),
        invoker=_EchoInvoker(),
    )


def _output(capsys) -> dict:
    return json.loads(capsys.readouterr().out)


def test_schedule_from_args_variants():
    parser = task_cli._build_parser()
    base = ["create", "n", "--agent", "general", "--prompt", "p"]
    assert task_cli.schedule_from_args(parser.parse_args(base + ["--every", "15"])) == {"type": "Interval", "minutes": 15}
    assert task_cli.schedule_from_args(parser.parse_args(base + ["--hourly-at", "5"])) == {"type": "Hourly", "at_minute": 5}
    assert task_cli.schedule_from_args(parser.parse_args(base + ["--daily-at", "07:30"])) == {
        "type": "Daily",
        "at_hour": 7,
        "at_minute": 30,
    }
    assert task_cli.schedule_from_args(parser.parse_args(base + ["--weekly-on", "Friday", "--at", "18:00"])) == {
        "type": "Weekly",
        "day": 5,
        "at_hour": 18,
        "at_minute": 0,
    }


def test_create_requires_a_schedule_flag(service, capsys):
    rc = task_cli.main(["create", "n", "--agent", "general", "--prompt", "p"], service=service)
    assert rc == 2
    assert "--every" in capsys.readouterr().err


def test_create_list_and_run(service, capsys):
    rc = task_cli.main(["create", "Digest", "--agent", "general", "--prompt", "hi", "--every", "30"], service=service)
    assert rc == 0
    task_id = _output(capsys)["data"]["id"]

    assert task_cli.main(["list"], service=service) == 0
    listed = _output(capsys)["data"]
    assert [task["id"] for task in listed] == [task_id]

    assert task_cli.main(["run", task_id], service=service) == 0
    result = _output(capsys)["data"]
    assert result["task_id"] == task_id
    assert result["response"] == "general:hi"

    assert task_cli.main(["disable", task_id], service=service) == 0
    assert _output(capsys)["data"]["enabled"] is False


def test_validation_error_exit_code(service, capsys):
    rc = task_cli.main(["create", "Digest", "--agent", "general", "--prompt", "hi", "--every", "0"], service=service)
    assert rc == 1
    out = _output(capsys)
    assert out["success"] is False
    assert out["error_type"] == "validation"


def test_delete_unknown_task(service, capsys):
    assert task_cli.main(["delete", "task_missing"], service=service) == 1
    assert _output(capsys)["error_type"] == "not_found"
