"""Sequential replay of pre-built browser plans."""

import time
from collections.abc import Callable
from typing import Any

from ..diagnostics import DebugCallback, DebugLog
from .client import ToolServerClient
from .models import PlanResult, PlanStep, StepExecution, ToolResult

StepStartCallback = Callable[[int, PlanStep], None]
StepCompleteCallback = Callable[[int, PlanStep, ToolResult], None]


def step_result(response: dict[str, Any]) -> ToolResult:
    """Normalize a raw tool server response."""
    success = bool(response.get("success", True))
    error = response.get("error")
    if not success:
        return ToolResult.fail(str(error or "Step failed"), data=response)
    return ToolResult.ok(response)


class PlanOrchestrator:
    """Executes plan steps in order against the tool server.

    A failing step stops the plan unless it is marked optional.
    """

    def __init__(
        self,
        client: ToolServerClient,
        on_step_start: StepStartCallback | None = None,
        on_step_complete: StepCompleteCallback | None = None,
        debug_callback: DebugCallback | None = None,
    ) -> None:
        self._client = client
        self._on_step_start = on_step_start
        self._on_step_complete = on_step_complete
        self._log = DebugLog(debug_callback)

    async def run(self, steps: list[PlanStep], session_id: str | None = None) -> PlanResult:
        executions: list[StepExecution] = []
        for index, step in enumerate(steps):
            if self._on_step_start:
                self._on_step_start(index, step)
            started = time.monotonic()
            try:
                response = await self._client.call(step.action, step.params, session_id=session_id)
                result = step_result(response)
            except (ValueError, RuntimeError, TimeoutError, ConnectionError) as e:
                result = ToolResult.fail(str(e))

            executions.append(
                StepExecution(
                    index=index,
                    step=step,
                    result=result,
                    duration_seconds=time.monotonic() - started,
                )
            )
            if self._on_step_complete:
                self._on_step_complete(index, step, result)

            if not result.success:
                label = step.description or step.action
                if step.optional:
                    self._log.warning("Plan", f"Optional step {index + 1} ({label}) failed: {result.error}")
                    continue
                self._log.error("Plan", f"Step {index + 1} ({label}) failed: {result.error}")
                return PlanResult(
                    success=False,
                    steps=executions,
                    error=f"Step {index + 1} ({label}) failed: {result.error}",
                )

        return PlanResult(success=True, steps=executions)
