"""Core scheduling and execution utilities for Taskloom."""

from .agent_invoker import AgentInvoker
from .agent_registry import AgentProfile, AgentRegistry, load_agent_profiles
from .config_loader import (
    clear_config_cache,
    get_agents_config,
    get_provider_config,
    get_scheduler_config,
    load_config,
    resolve_config_path,
)
from .recurrence import compute_next_run
from .result_history import ResultHistory
from .schedule_types import (
    DailySchedule,
    HourlySchedule,
    IntervalSchedule,
    Schedule,
    ScheduleValidationError,
    WeeklySchedule,
    describe_schedule,
    parse_schedule,
    schedule_to_dict,
)
from .scheduler_service import SchedulerService, SchedulerSettings, get_scheduler_service, load_scheduler_settings
from .task_executor import TaskExecutor, render_prompt
from .task_store import TaskStore
from .task_types import ScheduledTask, TaskNotFoundError, TaskResult, TaskValidationError

__all__ = [
    "AgentInvoker",
    "AgentProfile",
    "AgentRegistry",
    "DailySchedule",
    "HourlySchedule",
    "IntervalSchedule",
    "ResultHistory",
    "Schedule",
    "ScheduleValidationError",
    "ScheduledTask",
    "SchedulerService",
    "SchedulerSettings",
    "TaskExecutor",
    "TaskNotFoundError",
    "TaskResult",
    "TaskStore",
    "TaskValidationError",
    "WeeklySchedule",
    "clear_config_cache",
    "compute_next_run",
    "describe_schedule",
    "get_agents_config",
    "get_provider_config",
    "get_scheduler_config",
    "get_scheduler_service",
    "load_agent_profiles",
    "load_config",
    "load_scheduler_settings",
    "parse_schedule",
    "render_prompt",
    "resolve_config_path",
    "schedule_to_dict",
]
