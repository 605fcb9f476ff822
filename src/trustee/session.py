"""Core turn loop: the Session coordinator."""
from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Awaitable, Callable

from trustee.checkpoint import Checkpoint, CheckpointManager, SessionStatus
from trustee.config import SessionConfig
from trustee.errors import (
    CheckpointError,
    ConversationInvariantError,
    TemplateLoadError,
)
from trustee.events import (
    AssistantMessage,
    AssistantTextDelta,
    CheckpointFailed,
    CheckpointSaved,
    EventEmitter,
    IterationCompleted,
    ProviderCallStarted,
    ProviderRetry,
    SessionFinished,
    SessionStarted,
    TaskClassified,
    TemplatesLoaded,
    ToolCallFinished,
    ToolCallStarted,
)
from trustee.lifecycle import SYSTEM_TEMPLATE, TASK_START_TEMPLATE, Lifecycle, load_for_task
from trustee.state import AgentMode, SessionOutcome, WorkflowState, WorkflowStep
from trustee.tools.dispatcher import INTERRUPTED, ToolDispatcher
from trustee.tools.registry import ToolRegistry
from trustee_llm._retry import with_retry
from trustee_llm.adapter import ProviderAdapter
from trustee_llm.errors import LLMError, RequestTimeoutError
from trustee_llm.stream import collect_stream
from trustee_llm.types.config import GenerateConfig
from trustee_llm.types.enums import Role
from trustee_llm.types.messages import Message, unanswered_tool_calls, validate_tool_pairing
from trustee_llm.types.response import GenerateResponse, ToolCallsResponse
from trustee_llm.types.tools import ToolCall, ToolResult

logger = logging.getLogger(__name__)

UserInput = Callable[[str], Awaitable[str | None]]

_STATUS_FOR_OUTCOME = {
    SessionOutcome.COMPLETED: SessionStatus.COMPLETED,
    SessionOutcome.MAX_ITERATIONS_REACHED: SessionStatus.COMPLETED,
    SessionOutcome.FAILED: SessionStatus.FAILED,
}

# A session that failed in one of these steps never received its opening prompt
_BEFORE_LOOP = frozenset({
    WorkflowStep.INIT, WorkflowStep.CLASSIFICATION, WorkflowStep.TEMPLATE_LOADING,
})


@dataclass(frozen=True)
class SessionResult:
    """What a finished run hands back to its caller."""

    session_id: str
    outcome: SessionOutcome
    state: WorkflowState
    messages: tuple[Message, ...]
    error: BaseException | None = None
    last_checkpoint: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome in (SessionOutcome.COMPLETED, SessionOutcome.MAX_ITERATIONS_REACHED)


class Session:
    """Drives one task from its description to a terminal outcome.

    The loop is strictly sequential: at most one provider call or tool
    execution is outstanding at any time, and every tool call is answered by
    exactly one tool message before the next provider call. Provider calls,
    tool executions and checkpoint writes are the only suspension points, so
    :meth:`cancel` takes effect at one of them.
    """

    def __init__(
        self,
        provider: ProviderAdapter,
        lifecycle: Lifecycle,
        registry: ToolRegistry | None = None,
        checkpoints: CheckpointManager | None = None,
        config: SessionConfig | None = None,
        event_emitter: EventEmitter | None = None,
        session_id: str | None = None,
        user_input: UserInput | None = None,
        working_dir: str | Path = ".",
    ) -> None:
        self.id = session_id or uuid.uuid4().hex
        self.provider = provider
        self.lifecycle = lifecycle
        self.registry = registry if registry is not None else ToolRegistry()
        self.checkpoints = checkpoints
        self.config = config or SessionConfig()
        self.event_emitter = event_emitter or EventEmitter()
        self.user_input = user_input
        self.working_dir = Path(working_dir)
        self.dispatcher = ToolDispatcher(
            self.registry,
            timeout=self.config.tool_timeout,
            max_output_chars=self.config.max_tool_output_chars,
        )

        self.state: WorkflowState | None = None
        self.messages: list[Message] = []
        self.last_checkpoint: int | None = None

        self._task: asyncio.Task | None = None
        self._pending_save: asyncio.Future | None = None
        self._failed_step: WorkflowStep | None = None

    # --- Public API ---

    async def run(self, task_description: str) -> SessionResult:
        """Start a fresh session for *task_description* and run it to the end."""
        if self.state is not None:
            raise RuntimeError(f"Session {self.id} has already been started")
        self.state = WorkflowState(task_description=task_description, mode=self.config.mode)
        self.event_emitter.emit(SessionStarted(session_id=self.id, task_description=task_description))
        logger.info("Session %s started: %s", self.id, task_description)
        return await self._drive(self._start_and_loop)

    async def resume(self, sequence: int | None = None) -> SessionResult:
        """Restore a checkpoint of this session and continue the loop.

        Classification and template loading are never repeated. Raises
        CheckpointNotFoundError or CheckpointCorruptError when the checkpoint
        cannot be read.
        """
        if self.checkpoints is None:
            raise RuntimeError("Cannot resume without a checkpoint manager")
        checkpoint = await self.checkpoints.aload(self.id, sequence)
        stored = self.restore(checkpoint)
        if stored is not None:
            logger.info("Session %s already finished (%s)", self.id, stored)
            return self._result(stored)

        self.event_emitter.emit(SessionStarted(
            session_id=self.id, task_description=self.state.task_description, resumed=True,
        ))
        logger.info(
            "Session %s resumed from checkpoint #%d at iteration %d",
            self.id, checkpoint.sequence, self.state.iteration,
        )
        return await self._drive(self._loop)

    def restore(self, checkpoint: Checkpoint) -> SessionOutcome | None:
        """Load *checkpoint* into this session.

        Returns the stored outcome when the checkpoint records a finished
        session that cannot continue; otherwise ``None`` and the state is
        reopened for the loop.
        """
        if self._task is not None:
            raise RuntimeError(f"Session {self.id} is running")
        if not checkpoint.conversation:
            raise ConversationInvariantError(
                f"Checkpoint #{checkpoint.sequence} of session {self.id} has an empty conversation"
            )
        try:
            validate_tool_pairing(checkpoint.conversation)
        except ValueError as exc:
            raise ConversationInvariantError(str(exc)) from exc

        state = checkpoint.state
        failed_step = checkpoint.metadata.get("failed_step")
        if failed_step in _BEFORE_LOOP or not any(m.role == Role.USER for m in checkpoint.conversation):
            raise ConversationInvariantError(
                f"Session {self.id} failed before its opening prompt was complete"
                f" ({failed_step or 'no task message'}); start a new session instead"
            )

        self.messages = list(checkpoint.conversation)
        self.last_checkpoint = checkpoint.sequence

        if state.step == WorkflowStep.COMPLETION:
            outcome = SessionOutcome(checkpoint.metadata.get("outcome", SessionOutcome.COMPLETED))
            reached_limit = outcome == SessionOutcome.MAX_ITERATIONS_REACHED
            if not (reached_limit and state.iteration < self.config.max_iterations):
                self.state = state
                return outcome

        if unanswered_tool_calls(self.messages):
            state = replace(state, step=WorkflowStep.TOOL_EXECUTION)
        self.state = replace(state.reopen(), mode=self.config.mode)
        return None

    def cancel(self) -> bool:
        """Request cancellation of the running loop. Returns False if nothing runs."""
        if self._task is None or self._task.done():
            return False
        return self._task.cancel()

    @property
    def running(self) -> bool:
        return self._task is not None

    # --- Driver ---

    async def _drive(self, body: Callable[[], Awaitable[SessionOutcome]]) -> SessionResult:
        if self._task is not None:
            raise RuntimeError(f"Session {self.id} is already running")
        self._task = asyncio.current_task()
        try:
            outcome = await body()
        except asyncio.CancelledError:
            logger.info("Session %s cancelled at %s", self.id, self.state.step)
            await self._checkpoint_after_cancel()
            self.event_emitter.emit(SessionFinished(
                session_id=self.id, outcome=SessionOutcome.CANCELLED, iteration=self.state.iteration,
            ))
            raise
        except Exception as exc:
            if isinstance(exc, (LLMError, TemplateLoadError, ConversationInvariantError)):
                logger.error("Session %s failed: %s", self.id, exc)
            else:
                logger.exception("Session %s failed with an internal error", self.id)
            if not self.state.is_terminal:
                self._failed_step = self.state.step
                self.state = self.state.advance(WorkflowStep.FAILED)
            return await self._finish(SessionOutcome.FAILED, exc)
        finally:
            self._task = None
        return await self._finish(outcome)

    async def _finish(
        self, outcome: SessionOutcome, error: BaseException | None = None,
    ) -> SessionResult:
        await self._checkpoint(_STATUS_FOR_OUTCOME[outcome], outcome)
        self.event_emitter.emit(SessionFinished(
            session_id=self.id,
            outcome=outcome,
            iteration=self.state.iteration,
            error=str(error) if error is not None else None,
        ))
        logger.info(
            "Session %s finished: %s after %d iteration(s)", self.id, outcome, self.state.iteration,
        )
        return self._result(outcome, error)

    def _result(self, outcome: SessionOutcome, error: BaseException | None = None) -> SessionResult:
        return SessionResult(
            session_id=self.id,
            outcome=outcome,
            state=self.state,
            messages=tuple(self.messages),
            error=error,
            last_checkpoint=self.last_checkpoint,
        )

    # --- Initialization ---

    async def _start_and_loop(self) -> SessionOutcome:
        task_type = self._classify()
        self._load_templates(task_type)
        return await self._loop()

    def _classify(self) -> str:
        self.state = self.state.advance(WorkflowStep.CLASSIFICATION)
        fallback = False
        try:
            task_type = self.lifecycle.classify(self.state.task_description)
        except Exception as exc:
            logger.warning(
                "Task classification failed, using %r: %s", self.config.default_task_type, exc,
            )
            task_type = None
        if not task_type:
            task_type, fallback = self.config.default_task_type, True

        self.state = self.state.with_task_type(task_type)
        self.event_emitter.emit(TaskClassified(task_type=task_type, fallback=fallback))
        return task_type

    def _load_templates(self, task_type: str) -> None:
        self.state = self.state.advance(WorkflowStep.TEMPLATE_LOADING)
        data = json.dumps({
            "task": self.state.task_description,
            "task_type": task_type,
            "working_dir": str(self.working_dir),
            "tools": ", ".join(self.registry.names()) or "none",
            "completion_marker": self.config.completion_marker or "",
        })

        loaded = []
        for kind, factory in ((SYSTEM_TEMPLATE, Message.system), (TASK_START_TEMPLATE, Message.user)):
            try:
                name, template = load_for_task(self.lifecycle, kind, task_type)
                text = self.lifecycle.render_template(template, data)
            except TemplateLoadError:
                raise
            except Exception as exc:
                raise TemplateLoadError(f"Cannot prepare {kind!r} template: {exc}", template=kind) from exc
            self.messages.append(factory(text))
            loaded.append(name)

        self.state = self.state.advance(WorkflowStep.PLANNING_LOOP)
        self.event_emitter.emit(TemplatesLoaded(task_type=task_type, templates=tuple(loaded)))

    # --- Loop ---

    async def _loop(self) -> SessionOutcome:
        cfg = self.config
        if self.state.step == WorkflowStep.TOOL_EXECUTION:
            self._answer_interrupted_calls()
            self._complete_iteration()

        while True:
            if self.state.iteration >= cfg.max_iterations:
                logger.info("Session %s reached max_iterations=%d", self.id, cfg.max_iterations)
                self.state = self.state.advance(WorkflowStep.COMPLETION)
                return SessionOutcome.MAX_ITERATIONS_REACHED

            if self.state.iteration % cfg.checkpoint_interval == 0:
                await self._checkpoint()

            response = await self._call_provider()

            if isinstance(response, ToolCallsResponse):
                self._append(Message.assistant(response.text, tool_calls=response.calls))
                self.event_emitter.emit(AssistantMessage(
                    text=response.text, tool_call_count=len(response.calls),
                ))
                self.state = self.state.advance(WorkflowStep.TOOL_EXECUTION)
                await self._execute_tools(response.calls)
                self.state = self.state.advance(WorkflowStep.PLANNING_LOOP)
                self._complete_iteration()
                continue

            self._append(Message.assistant(response.text))
            self.event_emitter.emit(AssistantMessage(text=response.text))

            follow_up = None
            if not self._completion_signaled(response.text):
                follow_up = await self._next_user_message(response.text)
            if follow_up is not None:
                self._append(Message.user(follow_up))
            self._complete_iteration()
            if follow_up is None:
                self.state = self.state.advance(WorkflowStep.COMPLETION)
                return SessionOutcome.COMPLETED

    def _complete_iteration(self) -> None:
        self.state = self.state.next_iteration()
        self.event_emitter.emit(IterationCompleted(iteration=self.state.iteration))

    def _append(self, message: Message) -> None:
        self.messages.append(message)

    def _completion_signaled(self, text: str) -> bool:
        marker = self.config.completion_marker
        if marker and marker in text:
            return True
        completion_tools = set(self.config.completion_tools)
        return any(
            msg.role == Role.TOOL
            and msg.name in completion_tools
            and msg.metadata.get("success", False)
            for msg in self.messages
        )

    async def _next_user_message(self, assistant_text: str) -> str | None:
        """Next user turn after a non-completing reply; ``None`` ends the session."""
        if self.config.mode != AgentMode.INTERACTIVE:
            return self.config.continuation_prompt
        if self.user_input is None:
            return None
        reply = await self.user_input(assistant_text)
        if reply is None or not reply.strip():
            return None
        return reply

    # --- Provider ---

    def _generate_config(self) -> GenerateConfig:
        cfg = self.config
        return GenerateConfig(
            model=cfg.model,
            temperature=cfg.temperature,
            max_tokens=cfg.max_tokens,
            tools=tuple(self.registry.list_tools()),
            provider_options=cfg.provider_options,
        )

    async def _call_provider(self) -> GenerateResponse:
        pending = unanswered_tool_calls(self.messages)
        if pending:
            raise ConversationInvariantError(
                f"Unanswered tool call(s) before provider call: {', '.join(pending)}"
            )

        cfg = self.config
        messages = tuple(self.messages)
        gen_config = self._generate_config()
        attempt = 0

        async def call_once() -> GenerateResponse:
            nonlocal attempt
            attempt += 1
            self.state = self.state.record_api_call()
            self.event_emitter.emit(ProviderCallStarted(
                iteration=self.state.iteration, attempt=attempt, message_count=len(messages),
            ))
            try:
                async with asyncio.timeout(cfg.provider_timeout):
                    if cfg.streaming:
                        return await collect_stream(
                            self.provider.generate_streaming(messages, gen_config),
                            on_text=self._on_text,
                        )
                    return await self.provider.generate(messages, gen_config)
            except TimeoutError as exc:
                raise RequestTimeoutError(
                    f"Provider call timed out after {cfg.provider_timeout:g}s", cause=exc,
                ) from exc

        user_hook = cfg.retry.on_retry

        def on_retry(retry: int, exc: Exception, delay: float) -> None:
            self.event_emitter.emit(ProviderRetry(attempt=retry + 1, error=str(exc), delay=delay))
            if user_hook is not None:
                user_hook(retry, exc, delay)

        return await with_retry(call_once, replace(cfg.retry, on_retry=on_retry))

    def _on_text(self, text: str) -> None:
        self.event_emitter.emit(AssistantTextDelta(text=text))

    # --- Tools ---

    async def _execute_tools(self, calls: tuple[ToolCall, ...]) -> None:
        """Run calls one at a time, in the order the provider returned them."""
        for call in calls:
            self.event_emitter.emit(ToolCallStarted(
                tool_call_id=call.id, tool_name=call.name, input=dict(call.input),
            ))
            result = await self.dispatcher.execute(call)
            self._record_tool_result(call.name, result)

    def _answer_interrupted_calls(self) -> None:
        names = {call.id: call.name for msg in self.messages for call in msg.tool_calls}
        for call_id in unanswered_tool_calls(self.messages):
            logger.info("Answering interrupted tool call %s (%s)", call_id, names.get(call_id))
            result = ToolResult.failure(
                call_id, "Tool execution was interrupted before it finished", INTERRUPTED,
            )
            self._record_tool_result(names.get(call_id), result)
        self.state = self.state.advance(WorkflowStep.PLANNING_LOOP)

    def _record_tool_result(self, name: str | None, result: ToolResult) -> None:
        self._append(Message.tool(result, name=name))
        self.event_emitter.emit(ToolCallFinished(
            tool_call_id=result.tool_call_id,
            tool_name=name or "",
            success=result.success,
            content=result.content,
            error_kind=result.error_kind,
        ))

    # --- Checkpoints ---

    async def _checkpoint(
        self,
        status: SessionStatus = SessionStatus.ACTIVE,
        outcome: SessionOutcome | None = None,
    ) -> None:
        """Save a checkpoint. Write failures are logged and never fail the turn."""
        if self.checkpoints is None:
            return
        metadata: dict[str, Any] = {"provider": self.provider.name}
        if outcome is not None:
            metadata["outcome"] = outcome.value
        if self._failed_step is not None:
            metadata["failed_step"] = self._failed_step.value
        checkpoint = Checkpoint.create_now(self.id, self.messages, self.state, metadata)

        self._pending_save = asyncio.ensure_future(self.checkpoints.asave(checkpoint, status))
        try:
            saved = await asyncio.shield(self._pending_save)
        except CheckpointError as exc:
            self._pending_save = None
            logger.warning("Checkpoint for session %s failed: %s", self.id, exc)
            self.event_emitter.emit(CheckpointFailed(session_id=self.id, error=str(exc)))
            return
        self._pending_save = None

        self.last_checkpoint = saved.sequence
        path = self.checkpoints.checkpoint_path(self.id, saved.sequence)
        self.event_emitter.emit(CheckpointSaved(session_id=self.id, sequence=saved.sequence, path=str(path)))

    async def _checkpoint_after_cancel(self) -> None:
        # A write interrupted by the cancellation keeps running in its thread;
        # let it land before issuing the final one.
        pending, self._pending_save = self._pending_save, None
        if pending is not None:
            await asyncio.wait([pending])
            if not pending.cancelled() and pending.exception() is not None:
                logger.warning("Interrupted checkpoint for session %s failed: %s", self.id, pending.exception())
        await self._checkpoint()
