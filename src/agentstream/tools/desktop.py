"""Screenshot-driven desktop automation.

Loaded on demand by the dispatch router. A planner looks at a screenshot
and proposes coordinate or keyboard actions; the orchestrator executes
them through the tool server until the planner says it is done or the
mode's step budget runs out.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

import httpx

from ..diagnostics import DebugCallback, DebugLog
from .client import ToolServerClient
from .models import DesktopAction, DesktopModeConfig, DesktopTaskConfig, DesktopTaskResult, PlannerResponse


class ActionPlanner(ABC):
    """Proposes the next actions for a task given a screenshot."""

    @abstractmethod
    async def plan(
        self,
        instruction: str,
        screenshot: str,
        history: list[DesktopAction],
        config: DesktopModeConfig,
    ) -> PlannerResponse:
        """Plan the next actions.

        Args:
            instruction: Task or todo being worked on
            screenshot: Base64 encoded screenshot of the current screen
            history: Actions already executed for this instruction
            config: Mode limits (model, temperature)

        Returns:
            PlannerResponse with actions and a done flag
        """

    async def close(self) -> None:
        """Release resources held by the planner."""


class HttpActionPlanner(ActionPlanner):
    """Planner reached over HTTP (a hosted vision-action model)."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        endpoint: str = "/v1/actions",
        timeout: float = 60.0,
        **client_kwargs: Any
    ):
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._endpoint = endpoint
        self._client = httpx.AsyncClient(base_url=base_url, headers=headers, timeout=timeout, **client_kwargs)

    async def plan(
        self,
        instruction: str,
        screenshot: str,
        history: list[DesktopAction],
        config: DesktopModeConfig,
    ) -> PlannerResponse:
        response = await self._client.post(
            self._endpoint,
            json={
                "model": config.model,
                "temperature": config.temperature,
                "instruction": instruction,
                "screenshot": screenshot,
                "history": [action.model_dump(exclude_none=True) for action in history],
            },
        )
        if response.is_error:
            return PlannerResponse(error=f"Planner error: {response.status_code} {response.reason_phrase}")
        return PlannerResponse.model_validate(response.json())

    async def close(self) -> None:
        await self._client.aclose()


class DesktopOrchestrator:
    """Runs actor, thinker and tasker loops against the tool server."""

    def __init__(
        self,
        client: ToolServerClient,
        planner: ActionPlanner,
        on_step: Callable[[int, DesktopAction], None] | None = None,
        on_todo_start: Callable[[int, str], None] | None = None,
        on_todo_complete: Callable[[int, str, bool], None] | None = None,
        on_log: Callable[[str], None] | None = None,
        on_complete: Callable[[DesktopTaskResult], None] | None = None,
        on_error: Callable[[str], None] | None = None,
        on_screenshot: Callable[[str], None] | None = None,
        debug_callback: DebugCallback | None = None,
    ) -> None:
        self._client = client
        self._planner = planner
        self._on_step = on_step
        self._on_todo_start = on_todo_start
        self._on_todo_complete = on_todo_complete
        self._on_log = on_log
        self._on_complete = on_complete
        self._on_error = on_error
        self._on_screenshot = on_screenshot
        self._log = DebugLog(debug_callback)
        self._stopped = False

    def stop(self) -> None:
        """Request the running loop to stop after the current action."""
        self._stopped = True

    def _emit_log(self, message: str) -> None:
        self._log.info("Desktop", message)
        if self._on_log:
            self._on_log(message)

    async def run(self, task: DesktopTaskConfig) -> DesktopTaskResult:
        self._stopped = False
        try:
            if task.start_url:
                await self._client.browser_start(task.start_url)
            if task.mode == "tasker" and task.todos:
                result = await self._run_tasker(task)
            else:
                result = await self._run_loop(task.task_description, task.config, task.config.max_steps)
        except (RuntimeError, TimeoutError, ConnectionError, ValueError) as e:
            message = str(e)
            if self._on_error:
                self._on_error(message)
            return DesktopTaskResult(success=False, message=message)

        if not result.success and self._on_error:
            self._on_error(result.message)
        if self._on_complete:
            self._on_complete(result)
        return result

    async def _run_tasker(self, task: DesktopTaskConfig) -> DesktopTaskResult:
        steps = 0
        completed = 0
        for index, todo in enumerate(task.todos):
            if self._stopped:
                break
            if self._on_todo_start:
                self._on_todo_start(index, todo)
            outcome = await self._run_loop(todo, task.config, task.config.max_steps_per_todo)
            steps += outcome.steps_executed
            if self._on_todo_complete:
                self._on_todo_complete(index, todo, outcome.success)
            if not outcome.success:
                return DesktopTaskResult(
                    success=False,
                    steps_executed=steps,
                    todos_completed=completed,
                    message=f"Todo {index + 1} failed: {outcome.message}",
                )
            completed += 1
            if steps >= task.config.max_steps:
                break

        success = completed == len(task.todos)
        return DesktopTaskResult(
            success=success,
            steps_executed=steps,
            todos_completed=completed,
            message="All todos completed" if success else "Stopped before completing all todos",
        )

    async def _run_loop(self, instruction: str, config: DesktopModeConfig, max_steps: int) -> DesktopTaskResult:
        history: list[DesktopAction] = []
        steps = 0
        while steps < max_steps and not self._stopped:
            shot = await self._client.screenshot(scope="desktop")
            image = shot.get("screenshot") or shot.get("image") or ""
            if self._on_screenshot and image:
                self._on_screenshot(image)

            response = await self._planner.plan(instruction, image, history, config)
            if response.error:
                return DesktopTaskResult(success=False, steps_executed=steps, message=response.error)
            if response.reasoning:
                self._emit_log(response.reasoning)

            for action in response.actions:
                steps += 1
                if self._on_step:
                    self._on_step(steps, action)
                if action.type == "done":
                    return DesktopTaskResult(success=True, steps_executed=steps, message=action.reason or "Done")
                if action.type == "fail":
                    return DesktopTaskResult(
                        success=False, steps_executed=steps, message=action.reason or "Planner gave up"
                    )
                await self._execute(action)
                history.append(action)
                if steps >= max_steps:
                    break

            if response.is_done:
                return DesktopTaskResult(success=True, steps_executed=steps, message="Done")

        if self._stopped:
            return DesktopTaskResult(success=False, steps_executed=steps, message="Stopped")
        return DesktopTaskResult(success=False, steps_executed=steps, message=f"Reached step limit ({max_steps})")

    async def _execute(self, action: DesktopAction) -> None:
        if action.type == "click":
            if action.coordinate is None:
                raise ValueError("click action requires a coordinate")
            x, y = action.coordinate
            await self._client.click(x, y, scope="desktop")
        elif action.type == "type":
            await self._client.type_text(action.text or "", scope="desktop")
        elif action.type == "scroll":
            options: dict[str, Any] = {"scope": "desktop"}
            if action.scroll_amount is not None:
                options["amount"] = action.scroll_amount
            await self._client.scroll(action.direction or "down", **options)
        elif action.type == "press":
            await self._client.keypress(action.key or action.text or "", scope="desktop")
        elif action.type == "wait":
            await asyncio.sleep((action.duration_ms or 1000) / 1000)
