"""Data models for local tool execution.

These models describe commands received mid-stream and the normalized
results sent back, independent of which executor handles them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class ToolName(str, Enum):
    """Executors known to the dispatch router."""

    BROWSER_ACTION = "browser_action"
    BROWSER_PLAN = "browser_plan"
    DESKTOP_AUTOMATION = "desktop_automation"
    DOM_SNAPSHOT = "dom_snapshot"


class PlanStep(BaseModel):
    """One step of a pre-built browser plan."""

    model_config = ConfigDict(extra="allow")

    action: str = Field(description="Tool server action (click, type, navigate, ...)")
    params: dict[str, Any] = Field(default_factory=dict)
    description: str = Field(default="", description="Human readable label for progress output")
    optional: bool = Field(default=False, description="Continue the plan if this step fails")


class ToolCommand(BaseModel):
    """A unit of work the backend asks the client to execute locally."""

    model_config = ConfigDict(extra="allow")

    tool: str = Field(description="Executor name")
    action: str | None = Field(default=None, description="Action or mode discriminator")
    mode: str | None = Field(default=None, description="Desktop automation mode")
    params: dict[str, Any] = Field(default_factory=dict)
    plan: list[PlanStep] | None = Field(default=None)
    task: str | None = Field(default=None, description="Task description for desktop automation")
    todos: list[str] | None = Field(default=None)

    @property
    def resolved_action(self) -> str | None:
        """Action from the command, falling back to ``params['action']``."""
        return self.action or self.params.get("action")


class ToolResult(BaseModel):
    """Normalized executor result."""

    success: bool
    data: dict[str, Any] | None = None
    error: str | None = None

    @classmethod
    def ok(cls, data: dict[str, Any] | None = None) -> "ToolResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, data: dict[str, Any] | None = None) -> "ToolResult":
        return cls(success=False, error=error, data=data)


class LocalExecutionStatus(BaseModel):
    """Currently running tool command, for observers."""

    tool: str
    action: str | None = None
    started_at: datetime = Field(default_factory=datetime.now)
    step: int | None = None
    total_steps: int | None = None
    detail: str | None = None


class StepExecution(BaseModel):
    """Outcome of one plan step."""

    index: int
    step: PlanStep
    result: ToolResult
    duration_seconds: float = 0.0


class PlanResult(BaseModel):
    """Outcome of a complete plan replay."""

    success: bool
    steps: list[StepExecution] = Field(default_factory=list)
    error: str | None = None

    @property
    def completed_steps(self) -> int:
        return sum(1 for execution in self.steps if execution.result.success)


DesktopMode = Literal["actor", "thinker", "tasker"]


class DesktopModeConfig(BaseModel):
    """Limits for one desktop automation mode."""

    model: str
    max_steps: int = Field(ge=1)
    max_steps_per_todo: int = Field(ge=1)
    temperature: float = Field(ge=0.0, le=1.0)


DESKTOP_MODE_CONFIGS: dict[str, DesktopModeConfig] = {
    "actor": DesktopModeConfig(model="lux-actor-1", max_steps=20, max_steps_per_todo=20, temperature=0.1),
    "thinker": DesktopModeConfig(model="lux-thinker-1", max_steps=100, max_steps_per_todo=100, temperature=0.5),
    "tasker": DesktopModeConfig(model="lux-actor-1", max_steps=200, max_steps_per_todo=24, temperature=0.0),
}


class DesktopTaskConfig(BaseModel):
    """Desktop task as received from the stream."""

    mode: DesktopMode = "actor"
    task_description: str
    todos: list[str] = Field(default_factory=list)
    start_url: str | None = None
    config: DesktopModeConfig

    @classmethod
    def from_command(cls, command: ToolCommand) -> "DesktopTaskConfig":
        """Build a task config from a ``desktop_automation`` command."""
        params = command.params
        mode = command.mode or params.get("mode") or "actor"
        if mode not in DESKTOP_MODE_CONFIGS:
            raise ValueError(f"Unknown desktop mode: {mode}")
        base = DESKTOP_MODE_CONFIGS[mode]
        overrides = params.get("config") or {}
        return cls(
            mode=mode,
            task_description=command.task or params.get("task_description") or params.get("task") or "",
            todos=command.todos or params.get("todos") or [],
            start_url=params.get("start_url"),
            config=base.model_copy(update=overrides),
        )


DesktopActionType = Literal["click", "type", "scroll", "press", "wait", "done", "fail"]


class DesktopAction(BaseModel):
    """A single coordinate or text action proposed by the planner."""

    type: DesktopActionType
    coordinate: tuple[int, int] | None = None
    text: str | None = None
    key: str | None = None
    direction: Literal["up", "down"] | None = None
    scroll_amount: int | None = None
    duration_ms: int | None = None
    reason: str | None = None


class PlannerResponse(BaseModel):
    """Planner answer for one screenshot."""

    actions: list[DesktopAction] = Field(default_factory=list)
    is_done: bool = False
    reasoning: str | None = None
    error: str | None = None


class DesktopTaskResult(BaseModel):
    """Outcome of a desktop automation run."""

    success: bool
    steps_executed: int = 0
    todos_completed: int = 0
    message: str = ""


class RoundTrip(BaseModel):
    """Result forwarded to the backend as a silent follow-up turn."""

    tool_server_result: dict[str, Any] | None = None
    dom_result: dict[str, Any] | None = None
