"""Dispatch of ``tool_execute_locally`` commands to local executors.

This module hides which executor handles a command and how its outcome is
normalized. Executors never raise past ``dispatch``: failures become a
failed ToolResult plus a user notification.
"""

import asyncio
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from pydantic import TypeAdapter, ValidationError

from ..config import DOM_SNAPSHOT_TIMEOUT
from ..diagnostics import DebugCallback, DebugLog, short_id
from ..notifications import Notifier, NullNotifier
from .client import ToolServerClient, canonical_action
from .models import LocalExecutionStatus, PlanStep, RoundTrip, ToolCommand, ToolName, ToolResult
from .plan import PlanOrchestrator, step_result
from .session import AutomationSessionService

if TYPE_CHECKING:
    from .desktop import ActionPlanner

StatusListener = Callable[[LocalExecutionStatus | None], None]

# Browser actions whose outcome the backend needs to continue the task
ROUND_TRIP_ACTIONS = frozenset({"browser_start", "screenshot"})

_plan_adapter = TypeAdapter(list[PlanStep])


class ToolDispatchRouter:
    """Routes tool commands by name.

    Known tools:
    - browser_action: one tool server call
    - browser_plan: ordered plan replay
    - desktop_automation: screenshot/planner loop (imported on first use)
    - dom_snapshot: interactive element snapshot of the current page
    """

    def __init__(
        self,
        client: ToolServerClient,
        sessions: AutomationSessionService,
        notifier: Notifier | None = None,
        planner: "ActionPlanner | None" = None,
        dom_timeout: float = DOM_SNAPSHOT_TIMEOUT,
        debug_callback: DebugCallback | None = None,
    ) -> None:
        self._client = client
        self._sessions = sessions
        self._notifier = notifier or NullNotifier()
        self._planner = planner
        self._dom_timeout = dom_timeout
        self._debug_callback = debug_callback
        self._log = DebugLog(debug_callback)
        self._lock = asyncio.Lock()
        self._status: LocalExecutionStatus | None = None
        self._listeners: list[StatusListener] = []

    @property
    def status(self) -> LocalExecutionStatus | None:
        """The command currently executing, if any."""
        return self._status

    def subscribe_status(self, listener: StatusListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _set_status(self, status: LocalExecutionStatus | None) -> None:
        self._status = status
        for listener in list(self._listeners):
            listener(status)

    def _update_status(self, **changes: Any) -> None:
        if self._status is not None:
            self._set_status(self._status.model_copy(update=changes))

    async def dispatch(self, command: ToolCommand) -> ToolResult:
        """Execute one command. Never raises for executor failures."""
        async with self._lock:
            self._set_status(LocalExecutionStatus(tool=command.tool, action=command.resolved_action))
            self._log.info("Tools", f"Executing {command.tool} ({command.resolved_action or '-'})")
            try:
                result = await self._execute(command)
            except Exception as e:
                self._log.error("Tools", f"{command.tool} failed: {e}")
                self._notifier.error("Tool execution failed", str(e))
                result = ToolResult.fail(str(e))
            finally:
                self._set_status(None)

        if not result.success:
            self._log.warning("Tools", f"{command.tool} returned failure: {result.error}")
        return result

    async def _execute(self, command: ToolCommand) -> ToolResult:
        if command.tool == ToolName.BROWSER_ACTION.value:
            return await self._browser_action(command)
        if command.tool == ToolName.BROWSER_PLAN.value:
            return await self._browser_plan(command)
        if command.tool == ToolName.DESKTOP_AUTOMATION.value:
            return await self._desktop_automation(command)
        if command.tool == ToolName.DOM_SNAPSHOT.value:
            return await self._dom_snapshot(command)
        return ToolResult.fail(f"Unknown tool: {command.tool}")

    async def _browser_action(self, command: ToolCommand) -> ToolResult:
        action = command.resolved_action
        if not action:
            return ToolResult.fail("browser_action requires an action")
        action = canonical_action(action)

        session_id = None if action == "browser_start" else self._sessions.resolve(command.params.get("session_id"))
        response = await self._client.call(action, command.params, session_id=session_id)

        if action == "browser_start":
            self._sessions.capture_from_result(response)
        elif action == "browser_stop" and response.get("success", True):
            if session_id is not None and session_id == self._sessions.session_id:
                self._sessions.clear()
        return step_result(response)

    async def _browser_plan(self, command: ToolCommand) -> ToolResult:
        try:
            steps = command.plan or _plan_adapter.validate_python(command.params.get("plan") or [])
        except ValidationError as e:
            return ToolResult.fail(f"Invalid plan: {e.error_count()} validation error(s)")
        if not steps:
            return ToolResult.fail("browser_plan requires at least one step")

        total = len(steps)
        self._update_status(total_steps=total)
        orchestrator = PlanOrchestrator(
            self._client,
            on_step_start=lambda index, step: self._update_status(
                step=index + 1, detail=step.description or step.action
            ),
            debug_callback=self._debug_callback,
        )
        result = await orchestrator.run(steps, session_id=self._sessions.resolve(command.params.get("session_id")))
        data = {"completed_steps": result.completed_steps, "total_steps": total}
        if result.success:
            return ToolResult.ok(data)
        return ToolResult.fail(result.error or "Plan failed", data=data)

    async def _desktop_automation(self, command: ToolCommand) -> ToolResult:
        from . import desktop
        from .models import DesktopTaskConfig

        if self._planner is None:
            return ToolResult.fail("Desktop automation planner not configured")
        try:
            task = DesktopTaskConfig.from_command(command)
        except (ValueError, ValidationError) as e:
            return ToolResult.fail(str(e))

        orchestrator = desktop.DesktopOrchestrator(
            self._client,
            self._planner,
            on_step=lambda index, action: self._update_status(step=index, detail=action.type),
            on_todo_start=lambda index, todo: self._update_status(detail=todo),
            on_log=lambda message: self._log.debug("Desktop", message),
            debug_callback=self._debug_callback,
        )
        outcome = await orchestrator.run(task)
        data = outcome.model_dump(exclude={"success"})
        if outcome.success:
            return ToolResult.ok(data)
        return ToolResult.fail(outcome.message or "Desktop automation failed", data=data)

    async def _dom_snapshot(self, command: ToolCommand) -> ToolResult:
        params = command.params
        session_id = self._sessions.resolve(params.get("session_id"))
        if session_id is None:
            start_url = params.get("start_url") or params.get("url")
            if not start_url:
                return ToolResult.fail("No active browser session")
            started = await self._client.browser_start(start_url)
            if not self._sessions.capture_from_result(started):
                error = started.get("error") or "Browser session could not be started"
                return ToolResult.fail(str(error))
            session_id = self._sessions.session_id
            self._log.info("Tools", f"Started session {short_id(session_id)} for DOM snapshot")

        try:
            async with asyncio.timeout(self._dom_timeout):
                response = await self._client.snapshot(session_id, timeout=self._dom_timeout)
        except TimeoutError:
            return ToolResult.fail(f"DOM snapshot timed out after {self._dom_timeout:g}s", data={"session_id": session_id})

        result = step_result(response)
        data = dict(result.data or {})
        data.setdefault("session_id", session_id)
        return result.model_copy(update={"data": data})

    def round_trip(self, command: ToolCommand, result: ToolResult) -> RoundTrip | None:
        """Payload for the silent follow-up turn, or None when none is needed.

        Session establishment, screenshots and DOM snapshots are forwarded
        (success or failure) and always carry ``session_id``.
        """
        data = dict(result.data or {})
        session_id = data.get("session_id") or self._sessions.session_id
        body: dict[str, Any] = {**data, "success": result.success, "session_id": session_id}
        if result.error:
            body["error"] = result.error

        if command.tool == ToolName.DOM_SNAPSHOT.value:
            return RoundTrip(dom_result=body)
        if command.tool == ToolName.BROWSER_ACTION.value:
            action = command.resolved_action
            if action and canonical_action(action) in ROUND_TRIP_ACTIONS:
                body["action"] = canonical_action(action)
                return RoundTrip(tool_server_result=body)
        return None
