"""Chat controller: the send guard and the per-turn stream loop.

One controller drives one chat view. It owns the message list, the
conversation-level push subscription and the background handoffs, and it
allows at most one send in flight.
"""

import asyncio
import contextlib
from collections import deque
from collections.abc import Callable, Coroutine
from typing import Any

from ..backend.base import BackendError, ChatBackend, StreamAborted
from ..backend.models import ChatRequest
from ..config import CONVERSATION_TITLE_LENGTH, MARKER_CONSULTATION_COMPLETE, MARKER_PDF_VALIDATED, ChatSettings
from ..diagnostics import DebugCallback, DebugLog, short_id
from ..notifications import Notifier, NullNotifier
from ..realtime.base import RealtimeChannel, Subscription
from ..storage.base import MessageStore
from ..storage.models import (
    Agent,
    BackgroundProgress,
    ChangeType,
    Conversation,
    Message,
    MessageRow,
    ResponseStatus,
    Role,
    RowChange,
)
from ..streaming.accumulator import ThrottledAccumulator
from ..streaming.decoder import decode_stream
from ..streaming.events import (
    CompleteEvent,
    ContentEvent,
    ErrorEvent,
    MessageStartEvent,
    SwitchingToBackgroundEvent,
    ToolExecuteLocallyEvent,
)
from ..streaming.monitor import StallMonitor
from ..tools.models import RoundTrip, ToolCommand
from ..tools.router import ToolDispatchRouter
from .handoff import BackgroundHandoff, HandoffRegistry
from .markers import SystemMarker, parse_marker
from .models import SendOptions, SendOutcome
from .recovery import RecoveryCoordinator, RecoveryOutcome, error_text
from .session import StreamSession
from .state import MessageList

ProgressListener = Callable[[BackgroundProgress], None]


def derive_title(text: str | None) -> str:
    """Conversation title from the first message text."""
    return (text or "Chat").strip()[:CONVERSATION_TITLE_LENGTH] or "Chat"


class ChatController:
    """Sends messages to an agent and keeps the message list current.

    Hidden design decisions:
    - Single-flight send guard
    - Optimistic user/assistant entries
    - Event handling for one streamed turn
    - Silent follow-up turns for local tool results
    - Recovery after transport failures
    """

    def __init__(
        self,
        backend: ChatBackend,
        store: MessageStore,
        realtime: RealtimeChannel | None = None,
        router: ToolDispatchRouter | None = None,
        notifier: Notifier | None = None,
        agent: Agent | None = None,
        user_id: str | None = None,
        settings: ChatSettings | None = None,
        debug_callback: DebugCallback | None = None,
    ) -> None:
        self._backend = backend
        self._store = store
        self._realtime = realtime
        self._router = router
        self._notifier = notifier or NullNotifier()
        self._agent = agent
        self._user_id = user_id
        self._settings = settings or ChatSettings()
        self._debug_callback = debug_callback
        self._log = DebugLog(debug_callback)

        self.messages = MessageList()
        self.handoffs = HandoffRegistry()
        self.progress: dict[str, BackgroundProgress] = {}
        self._conversation: Conversation | None = None
        self._conversation_sub: Subscription | None = None
        self._conversation_sub_id: str | None = None
        self._progress_listeners: list[ProgressListener] = []
        self._lock = asyncio.Lock()
        self._round_trips: deque[RoundTrip] = deque()
        self._last_user_text: str | None = None
        self._active_session: StreamSession | None = None
        self._tasks: set[asyncio.Task[object]] = set()
        self._recovery = RecoveryCoordinator(
            store,
            self.messages,
            self._notifier,
            reload=self.load_conversation,
            debug_callback=debug_callback,
        )

    @property
    def agent(self) -> Agent | None:
        return self._agent

    @property
    def conversation(self) -> Conversation | None:
        return self._conversation

    @property
    def is_sending(self) -> bool:
        return self._lock.locked()

    async def select_agent(self, agent: Agent) -> Conversation | None:
        """Switch agents and open the new agent's conversation, if it has one.

        The previous agent's conversation, its push subscription and the
        displayed messages are dropped. Without a persisted conversation the
        next send creates one.
        """
        previous = self._agent
        self._agent = agent
        if previous is not None and previous.id == agent.id:
            return self._conversation

        self._conversation = None
        await self._unsubscribe_conversation()
        self.messages.clear()
        existing = await self._store.find_conversation(self._user_id, agent.id)
        if existing is None:
            return None
        return await self.load_conversation(existing.id)

    def subscribe_progress(self, listener: ProgressListener) -> Callable[[], None]:
        self._progress_listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._progress_listeners:
                self._progress_listeners.remove(listener)

        return _unsubscribe

    # ------------------------------------------------------------------
    # Send guard
    # ------------------------------------------------------------------

    async def send(self, text: str, options: SendOptions | None = None) -> SendOutcome:
        """Send one message and stream the reply.

        A call made while another send is in flight is rejected, not queued.
        Tool results requested during the stream are sent back as silent
        turns before the guard is released.

        Returns:
            Outcome of the last turn run
        """
        options = options or SendOptions()
        if self._lock.locked():
            self._log.warning("Chat", "Send ignored: another send is in flight")
            return SendOutcome.REJECTED_BUSY

        async with self._lock:
            self._round_trips.clear()
            outcome = await self._run_turn(text, options)

            followups = 0
            while self._round_trips and not outcome.rejected:
                if followups >= self._settings.max_silent_followups:
                    self._log.warning("Chat", f"Dropping {len(self._round_trips)} tool result(s) after {followups} follow-ups")
                    self._round_trips.clear()
                    break
                round_trip = self._round_trips.popleft()
                followups += 1
                outcome = await self._run_turn(
                    "",
                    SendOptions(
                        silent=True,
                        agent=options.agent,
                        conversation_id=self._conversation.id if self._conversation else options.conversation_id,
                        tool_server_result=round_trip.tool_server_result,
                        dom_result=round_trip.dom_result,
                    ),
                )
            return outcome

    async def _resolve_conversation(self, agent: Agent, conversation_id: str | None) -> Conversation:
        if conversation_id and (self._conversation is None or self._conversation.id != conversation_id):
            conversation = await self._store.get_conversation(conversation_id)
            if conversation is None:
                raise LookupError(f"Conversation {conversation_id} not found")
            self._conversation = conversation
        elif not conversation_id and (self._conversation is None or self._conversation.agent_id != agent.id):
            self._conversation = await self._store.get_or_create_conversation(
                self._user_id, agent.id, title=derive_title(self._last_user_text)
            )
        await self._subscribe_conversation(self._conversation.id)
        return self._conversation

    # ------------------------------------------------------------------
    # One turn
    # ------------------------------------------------------------------

    async def _run_turn(self, text: str, options: SendOptions) -> SendOutcome:
        agent = options.agent or self._agent
        if agent is None:
            self._notifier.error("No agent selected")
            return SendOutcome.REJECTED_NO_AGENT

        if not options.silent:
            self._last_user_text = text
        try:
            conversation = await self._resolve_conversation(agent, options.conversation_id)
        except Exception as e:
            self._log.error("Chat", f"Could not resolve conversation: {e}")
            self._notifier.error("Failed to open conversation", str(e))
            return SendOutcome.FAILED

        if conversation.agent_id != agent.id:
            self._log.warning(
                "Chat",
                f"Conversation {short_id(conversation.id)} belongs to agent {short_id(conversation.agent_id)}, "
                f"not {agent.slug}",
            )
            self._notifier.warning("Conversation mismatch", "This conversation belongs to another agent. Please retry.")
            return SendOutcome.REJECTED_MISMATCH

        if not options.silent:
            self.messages.append(Message(role=Role.USER, content=text, conversation_id=conversation.id))
        placeholder = Message(role=Role.ASSISTANT, content="", conversation_id=conversation.id)
        self.messages.append(placeholder)

        request = ChatRequest(
            message=text,
            conversation_id=conversation.id,
            agent_slug=agent.slug,
            attachments=options.attachments or None,
            forced_tool=options.forced_tool,
            mode_flags=options.mode_flags,
            tool_server_result=options.tool_server_result,
            dom_result=options.dom_result,
            silent=options.silent,
        )

        session: StreamSession | None = None
        accumulator = ThrottledAccumulator(
            lambda content: self.messages.set_content(session.message_id if session else placeholder.id, content),
            interval=self._settings.commit_interval,
        )
        monitor = StallMonitor(
            threshold=self._settings.stall_threshold,
            poll_interval=self._settings.stall_poll_interval,
            debug_callback=self._debug_callback,
        )
        session = StreamSession(
            placeholder.id,
            conversation.id,
            agent.slug,
            accumulator,
            monitor,
            debug_callback=self._debug_callback,
        )

        async with session:
            self._active_session = session
            try:
                async with asyncio.timeout(self._settings.request_timeout):
                    return await self._stream_turn(session, request)
            except BackendError as e:
                self._log.error("Chat", f"Backend error: {e}")
                accumulator.reset(error_text(e))
                self._notifier.error("Failed to get response", str(e))
                return SendOutcome.FAILED
            except Exception as e:
                self._log.warning("Chat", f"Stream failed after {session.elapsed:.1f}s: {e!r}")
                outcome = await self._recovery.recover(session, e)
                return SendOutcome.RECOVERED if outcome is RecoveryOutcome.RECOVERED else SendOutcome.FAILED
            finally:
                self._active_session = None

    async def _stream_turn(self, session: StreamSession, request: ChatRequest) -> SendOutcome:
        async with self._backend.stream(request) as stream:
            session.attach_stream(stream)
            async with contextlib.aclosing(decode_stream(stream.aiter_bytes(), self._debug_callback)) as events:
                async for event in events:
                    if isinstance(event, MessageStartEvent):
                        self._adopt_backend_id(session, event.message_id)
                    elif isinstance(event, ContentEvent):
                        session.record_content(event.text)
                    elif isinstance(event, SwitchingToBackgroundEvent):
                        session.events_received += 1
                        session.accumulator.reset(event.message)
                        await session.cancel_reader()
                        await self._start_handoff(session)
                        return SendOutcome.BACKGROUND
                    elif isinstance(event, CompleteEvent):
                        session.events_received += 1
                        session.accumulator.flush()
                        await session.cancel_reader()
                        await self._complete(session, event)
                        return SendOutcome.COMPLETED
                    elif isinstance(event, ErrorEvent):
                        raise BackendError(event.error)
                    elif isinstance(event, ToolExecuteLocallyEvent):
                        session.events_received += 1
                        await self._run_tool(event.data)

        if session.total_chars == 0:
            raise StreamAborted(f"Stream ended without content after {session.events_received} event(s)")
        self._log.warning("Chat", f"Stream ended without completion after {session.total_chars} chars")
        session.accumulator.flush()
        await self._recovery.reconcile(session)
        return SendOutcome.COMPLETED

    def _adopt_backend_id(self, session: StreamSession, backend_id: str) -> None:
        previous = session.message_id
        session.backend_message_id = backend_id
        self.messages.rekey(previous, backend_id)
        self._log.debug("Chat", f"Assistant message {short_id(previous)} is {short_id(backend_id)}")

    async def _complete(self, session: StreamSession, event: CompleteEvent) -> None:
        if event.llm_provider:
            self.messages.update(session.message_id, llm_provider=event.llm_provider)
        if event.conversation_id and event.conversation_id != session.conversation_id:
            title = derive_title(self._last_user_text or session.accumulator.text)
            self._conversation = Conversation(
                id=event.conversation_id,
                agent_id=self._conversation.agent_id if self._conversation else "",
                user_id=self._user_id,
                title=title,
            )
            await self._subscribe_conversation(event.conversation_id)

    async def _start_handoff(self, session: StreamSession) -> None:
        if session.backend_message_id is None:
            self._log.warning("Chat", "Background handoff without a backend message id; relying on polling")
        handoff = BackgroundHandoff(
            session.message_id,
            self.messages,
            self._store,
            realtime=self._realtime,
            settings=self._settings,
            on_finish=self.handoffs.discard,
            debug_callback=self._debug_callback,
        )
        self.handoffs.add(handoff)
        await handoff.start()

    async def _run_tool(self, command: ToolCommand) -> None:
        if self._router is None:
            self._log.warning("Tools", f"Local tool execution is not available for {command.tool}")
            return

        result = await self._router.dispatch(command)
        round_trip = self._router.round_trip(command, result)
        if round_trip is not None:
            self._round_trips.append(round_trip)

    # ------------------------------------------------------------------
    # Conversation loading and push updates
    # ------------------------------------------------------------------

    async def load_conversation(self, conversation_id: str) -> Conversation:
        """Replace the message list with the persisted conversation.

        Raises:
            LookupError: If the conversation does not exist
        """
        conversation = await self._store.get_conversation(conversation_id)
        if conversation is None:
            raise LookupError(f"Conversation {conversation_id} not found")
        messages = await self._store.list_messages(conversation_id)
        self._conversation = conversation
        self.messages.replace_all([m for m in messages if parse_marker(m.content) is None])
        await self._subscribe_conversation(conversation_id)
        return conversation

    async def _subscribe_conversation(self, conversation_id: str) -> None:
        if self._realtime is None:
            return
        if self._conversation_sub is not None:
            if self._conversation_sub.active and self._conversation_sub_id == conversation_id:
                return
            await self._conversation_sub.unsubscribe()
        self._conversation_sub = await self._realtime.subscribe_conversation(
            conversation_id, self._on_conversation_change
        )
        self._conversation_sub_id = conversation_id

    async def _unsubscribe_conversation(self) -> None:
        if self._conversation_sub is not None:
            await self._conversation_sub.unsubscribe()
        self._conversation_sub = None
        self._conversation_sub_id = None

    def _on_conversation_change(self, change: RowChange) -> None:
        row = change.new
        text = row.text
        marker = parse_marker(text)
        if marker is not None:
            if change.event_type == ChangeType.INSERT:
                self._handle_marker(marker, row.conversation_id)
            return

        target = row.target_id
        if target is None:
            return
        if row.total_characters is not None or row.response_chunks:
            self._publish_progress(target, row.total_characters, len(row.response_chunks or []), row.status)

        if change.event_type == ChangeType.INSERT:
            if target in self.messages or self._is_user_echo(row.role, text) or self._is_unclaimed_reply(row):
                return
            self.messages.append(row.to_message())
        elif change.event_type == ChangeType.UPDATE:
            changes: dict[str, Any] = {}
            if text is not None:
                changes["content"] = text
            if row.llm_provider:
                changes["llm_provider"] = row.llm_provider
            if row.status is not None:
                changes["status"] = row.status
            if changes:
                self.messages.update(target, **changes)
        elif change.event_type == ChangeType.DELETE:
            self.messages.remove(target)

    def _is_user_echo(self, role: Role | None, text: str | None) -> bool:
        """Persisted copy of the optimistic user entry of the turn in flight."""
        if not self.is_sending or role != Role.USER:
            return False
        return text is not None and text == self._last_user_text

    def _is_unclaimed_reply(self, row: MessageRow) -> bool:
        """Assistant row of the turn in flight, before the stream named its id."""
        session = self._active_session
        if session is None or row.role != Role.ASSISTANT:
            return False
        if row.conversation_id not in (None, session.conversation_id):
            return False
        return row.target_id != session.message_id

    def _handle_marker(self, marker: SystemMarker, conversation_id: str | None) -> None:
        if marker.name == MARKER_CONSULTATION_COMPLETE:
            target = conversation_id or (self._conversation.id if self._conversation else None)
            if target:
                self._log.info("Chat", "Consultation complete, reloading conversation")
                self._spawn(self.load_conversation(target))
        elif marker.name == MARKER_PDF_VALIDATED:
            title = marker.payload_json().get("title") or "Document"
            self._notifier.success("PDF validated", str(title))
        else:
            self._log.debug("Chat", f"Dropping system marker {marker.name}")

    def _publish_progress(
        self,
        message_id: str,
        total_characters: int | None,
        chunks: int,
        status: ResponseStatus | None,
    ) -> None:
        progress = BackgroundProgress(
            message_id=message_id,
            total_characters=total_characters or 0,
            chunks=chunks,
            status=status or ResponseStatus.GENERATING,
        )
        self.progress[message_id] = progress
        for listener in list(self._progress_listeners):
            listener(progress)

    def _spawn(self, coro: Coroutine[Any, Any, object]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[object]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self._log.error("Chat", f"Background task failed: {task.exception()}")

    async def close(self) -> None:
        """Tear down handoffs, subscriptions and background tasks."""
        await self.handoffs.close_all()
        await self._unsubscribe_conversation()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        # failures are already reported by _task_done
        await asyncio.gather(*tasks, return_exceptions=True)

    async def __aenter__(self) -> "ChatController":
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        await self.close()
