"""
Scheduling tools. The scheduler itself is an external collaborator: any
object satisfying the Scheduler protocol can be attached to the agent.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from meow.tools.registry import Tool

_CLOCK_RE = re.compile(r"^(\d{1,2}):(\d{2})$")
_RELATIVE_RE = re.compile(r"^in\s+(\d+)\s*(m|min|h|hr|hour)s?$", re.IGNORECASE)

TIME_FORMAT_HELP = 'Use "HH:MM", "in Xm", "in Xh", or cron format.'


@dataclass
class Job:
    """A scheduled task as stored by the scheduler."""
    id: str
    name: str
    cron: str
    task: str
    user_id: str = "default"
    enabled: bool = True
    notify: bool = True
    repeat: bool = False
    last_run: Optional[str] = None


@runtime_checkable
class Scheduler(Protocol):
    """Job store + cron runner consumed by the scheduling tools.

    Implementations may also provide ms_until_next(cron) -> Optional[int]
    to describe the next trigger time.
    """

    def add_job(
        self,
        name: str,
        cron: str,
        task: str,
        user_id: str = "default",
        enabled: bool = True,
        notify: bool = True,
        repeat: bool = False,
    ) -> Job: ...

    def remove_job(self, job_id: str) -> bool: ...

    def toggle_job(self, job_id: str, enabled: bool) -> bool: ...

    def list_jobs(self) -> List[Job]: ...


def parse_to_cron(time: str, now: Optional[datetime] = None) -> Optional[str]:
    """Convert "HH:MM", "in 30m" / "in 2h" or a 5-field cron expression to cron.

    Relative times are resolved against now (local time) to a daily
    minute/hour expression.
    """
    time = time.strip()

    clock = _CLOCK_RE.match(time)
    if clock:
        hour, minute = int(clock.group(1)), int(clock.group(2))
        if 0 <= hour <= 23 and 0 <= minute <= 59:
            return f"{minute} {hour} * * *"

    relative = _RELATIVE_RE.match(time)
    if relative:
        value = int(relative.group(1))
        minutes = value * 60 if relative.group(2).lower().startswith("h") else value
        target = (now or datetime.now()) + timedelta(minutes=minutes)
        return f"{target.minute} {target.hour} * * *"

    if len(time.split()) == 5:
        return time
    return None


def describe_next(cron: str, scheduler: Any) -> str:
    """Human description of the next trigger, when the scheduler can compute it."""
    ms_until_next = getattr(scheduler, "ms_until_next", None)
    ms = ms_until_next(cron) if ms_until_next else None
    if not ms:
        return "unknown"

    mins = round(ms / 60_000)
    if mins < 60:
        return f"in {mins} minutes"
    hours, remain = divmod(mins, 60)
    if hours < 24:
        return f"in {hours}h {remain}m" if remain > 0 else f"in {hours} hours"
    return f"in {hours // 24} days"


def create_schedule_tools(scheduler: Scheduler, user_id: str = "default") -> List[Tool]:

    def schedule_task(task: str, time: str, repeat: bool = False, name: Optional[str] = None) -> Dict[str, Any]:
        cron = parse_to_cron(time)
        if cron is None:
            return {"success": False, "error": f'Cannot parse time "{time}". {TIME_FORMAT_HELP}'}

        job = scheduler.add_job(
            name=name or task[:40],
            cron=cron,
            task=task,
            user_id=user_id,
            enabled=True,
            notify=True,
            repeat=repeat,
        )
        return {
            "success": True,
            "job_id": job.id,
            "message": f'Task scheduled: "{task}"',
            "next_trigger": describe_next(cron, scheduler),
            "repeats": repeat,
        }

    def list_tasks() -> Dict[str, Any]:
        jobs = scheduler.list_jobs()
        if not jobs:
            return {"jobs": [], "message": "No scheduled tasks"}
        return {
            "jobs": [
                {
                    "id": j.id,
                    "name": j.name,
                    "task": j.task,
                    "cron": j.cron,
                    "enabled": j.enabled,
                    "repeat": j.repeat,
                    "last_run": j.last_run or "never",
                }
                for j in jobs
            ]
        }

    def cancel_task(job_id: str) -> Dict[str, Any]:
        if scheduler.remove_job(job_id):
            return {"success": True, "message": f"Task {job_id} cancelled"}
        return {"success": False, "error": f"No task found with ID {job_id}"}

    return [
        Tool(
            name="schedule_task",
            description=(
                "Schedule a task to run at a specific time. Can be a simple reminder "
                "(just notify the user) OR an autonomous action. When the task fires, "
                "the agent executes the task description using all available tools."
            ),
            parameters={
                "type": "object",
                "properties": {
                    "task": {
                        "type": "string",
                        "description": (
                            'What to do when the job fires, e.g. "Remind user to buy milk" '
                            'or "Summarize today\'s notes"'
                        ),
                    },
                    "time": {
                        "type": "string",
                        "description": (
                            'When to trigger. Formats: "17:00" (at 5pm), "in 30m" '
                            '(30 minutes from now), "in 2h", or cron "0 9 * * 1" (Mondays 9am)'
                        ),
                    },
                    "repeat": {
                        "type": "boolean",
                        "description": "If true, repeats on schedule. If false, fires once",
                        "default": False,
                    },
                    "name": {"type": "string", "description": "Short label for this task"},
                },
                "required": ["task", "time"],
            },
            execute=schedule_task,
        ),
        Tool(
            name="list_tasks",
            description="List all scheduled tasks (reminders and actions)",
            parameters={"type": "object", "properties": {}},
            execute=list_tasks,
        ),
        Tool(
            name="cancel_task",
            description="Cancel/remove a scheduled task by its ID",
            parameters={
                "type": "object",
                "properties": {"job_id": {"type": "string", "description": "The job ID to cancel"}},
                "required": ["job_id"],
            },
            execute=cancel_task,
        ),
    ]
