"""Session controller: owns the discussion state machine and drives the turn loop."""

import asyncio
import logging
import threading
from datetime import datetime, timezone

from config.config_loader import SummarizationConfig
from writers_room.agent import AgentRuntime
from writers_room.budget import CAUSE_ROUNDS, CAUSE_TIME, CAUSE_TOKENS, BudgetMonitor
from writers_room.errors import FatalAgentError, PersistenceError, SummarizationError, ValidationError
from writers_room.events import (
    AgentError,
    AgentSpoke,
    BudgetWarning,
    DiscussionAutoStopped,
    DiscussionCompleted,
    DiscussionError,
    DiscussionPaused,
    DiscussionResumed,
    DiscussionStarted,
    DiscussionStopped,
    DiscussionTimeout,
    EventBus,
    HumanInterventionAdded,
    SummarizationCompleted,
    SummarizationFailed,
    SummarizationStarted,
)
from writers_room.interventions import InterventionQueue, to_message
from writers_room.models import (
    ControlResult,
    Discussion,
    DiscussionOptions,
    DiscussionReport,
    DiscussionStatus,
    Impact,
    TokenUsageStats,
    TopicContext,
    TurnContext,
    TurnOutcome,
)
from writers_room.personas import Persona
from writers_room.quality import QualityEvaluator
from writers_room.report import build_report
from writers_room.scheduler import AgentTurn, HumanTurn, TurnScheduler
from writers_room.store import DiscussionStore
from writers_room.summarizer import SummarizationEngine

logger = logging.getLogger(__name__)

REASON_STOPPED = "stopped"
REASON_ERROR = "error"

_ABORT_REASONS = {REASON_STOPPED, REASON_ERROR}


class SessionController:
    """Runs one discussion at a time among a fixed set of personas.

    Control methods (pause/resume/stop/intervene) may be called from any
    thread. They only flip guarded flags or enqueue, and the turn loop
    reads them at turn boundaries. Only the loop task mutates the
    Discussion.
    """

    def __init__(
        self,
        personas: list[Persona],
        runtime: AgentRuntime,
        summarizer: SummarizationEngine | None = None,
        bus: EventBus | None = None,
        store: DiscussionStore | None = None,
        evaluator: QualityEvaluator | None = None,
        budget: BudgetMonitor | None = None,
    ) -> None:
        self._personas = list(personas)
        self._runtime = runtime
        self._summarizer = summarizer
        self.bus = bus or EventBus()
        self._store = store
        self._evaluator = evaluator
        self._budget = budget or BudgetMonitor()
        self._interventions = InterventionQueue()

        self._discussions: dict[str, Discussion] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._reports: dict[str, DiscussionReport] = {}
        self._current_id: str | None = None
        self._options = DiscussionOptions()
        self._scheduler: TurnScheduler | None = None
        self._warned: set[str] = set()

        self._flags_lock = threading.Lock()
        self._pause_requested = False
        self._stop_requested = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._wake: asyncio.Event | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start_discussion(
        self,
        topic: str,
        context: TopicContext | None = None,
        options: DiscussionOptions | None = None,
    ) -> str:
        """Create a discussion, move it to Active and schedule its turn loop.

        Raises:
            ValidationError: blank topic, fewer than 2 personas, no rotation
                personas, bad options, or another discussion still running.
        """
        if not topic or not topic.strip():
            raise ValidationError("Discussion topic must not be empty")
        if len(self._personas) < 2:
            raise ValidationError("At least 2 personas are required for a discussion")
        if not any(not p.is_mediator for p in self._personas):
            raise ValidationError("At least one non-mediator persona is required")
        if self.get_active_discussion() is not None:
            raise ValidationError("Another discussion is still active or paused")

        options = options or DiscussionOptions()
        if options.max_rounds <= 0:
            raise ValidationError("max_rounds must be positive")
        if options.time_limit_sec is not None and options.time_limit_sec <= 0:
            raise ValidationError("time_limit_sec must be positive")
        if options.token_limit is not None and options.token_limit <= 0:
            raise ValidationError("token_limit must be positive")
        context = context or TopicContext()

        discussion = Discussion(
            topic=topic.strip(),
            project_id=context.project_id,
            plot_id=context.plot_id,
            chapter_id=context.chapter_id,
            participants=tuple(p.id for p in self._personas),
        )
        if context.knowledge:
            discussion.metadata["knowledge"] = context.knowledge

        self._loop = asyncio.get_running_loop()
        self._wake = asyncio.Event()
        with self._flags_lock:
            self._pause_requested = False
            self._stop_requested = False
        self._options = options
        self._warned = set()
        dropped = self._interventions.drain()
        if dropped:
            logger.warning("Dropped %d stale interventions", len(dropped))
        self._scheduler = TurnScheduler(self._personas, self._interventions, options.max_rounds)
        self._budget.reset(options.max_rounds, options.time_limit_sec, options.token_limit)

        discussion.transition(DiscussionStatus.ACTIVE)
        discussion.started_at = datetime.now(timezone.utc)
        self._budget.start()
        self._discussions[discussion.id] = discussion
        self._current_id = discussion.id

        logger.info(
            "Discussion %s started: %r with %s",
            discussion.id, discussion.topic, ", ".join(discussion.participants),
        )
        self._persist(discussion.id, self._save_discussion, discussion)
        self.bus.publish(DiscussionStarted(discussion.id, discussion.topic, discussion.participants))

        self._tasks[discussion.id] = asyncio.create_task(self._run(discussion))
        return discussion.id

    def pause_discussion(self) -> ControlResult:
        discussion = self.get_active_discussion()
        if discussion is None or discussion.status is not DiscussionStatus.ACTIVE:
            return ControlResult.fail("No active discussion to pause")
        with self._flags_lock:
            if self._stop_requested:
                return ControlResult.fail("Discussion is stopping")
            self._pause_requested = True
        logger.info("Pause requested for %s", discussion.id)
        return ControlResult.ok()

    def resume_discussion(self) -> ControlResult:
        discussion = self.get_active_discussion()
        if discussion is None:
            return ControlResult.fail("No discussion to resume")
        with self._flags_lock:
            if self._stop_requested:
                return ControlResult.fail("Discussion is stopping")
            if discussion.status is not DiscussionStatus.PAUSED and not self._pause_requested:
                return ControlResult.fail("Discussion is not paused")
            # Also cancels a pause that the loop has not honored yet.
            self._pause_requested = False
        self._wake_loop()
        logger.info("Resume requested for %s", discussion.id)
        return ControlResult.ok()

    def stop_discussion(self) -> ControlResult:
        discussion = self.get_active_discussion()
        if discussion is None:
            return ControlResult.fail("No active or paused discussion to stop")
        with self._flags_lock:
            self._stop_requested = True
        self._wake_loop()
        logger.info("Stop requested for %s", discussion.id)
        return ControlResult.ok()

    def add_human_intervention(self, content: str, impact: Impact = Impact.MEDIUM) -> ControlResult:
        """Queue a human message for the next turn boundary, paused or not."""
        discussion = self.get_active_discussion()
        if discussion is None:
            return ControlResult.fail("No active or paused discussion")
        if not self._options.human_intervention_enabled:
            return ControlResult.fail("Human intervention is disabled for this discussion")
        if not content or not content.strip():
            return ControlResult.fail("Intervention content must not be empty")
        intervention = self._interventions.put(content.strip(), impact)
        logger.info("Human intervention %s queued (%s impact)", intervention.id, impact.value)
        return ControlResult.ok()

    async def wait_for_completion(self, discussion_id: str | None = None) -> DiscussionReport:
        discussion_id = discussion_id or self._current_id
        if discussion_id is None or discussion_id not in self._tasks:
            raise ValidationError(f"Unknown discussion: {discussion_id}")
        await self._tasks[discussion_id]
        return self._reports[discussion_id]

    async def run_discussion(
        self,
        topic: str,
        context: TopicContext | None = None,
        options: DiscussionOptions | None = None,
    ) -> DiscussionReport:
        discussion_id = await self.start_discussion(topic, context, options)
        return await self.wait_for_completion(discussion_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_discussion(self, discussion_id: str) -> Discussion | None:
        return self._discussions.get(discussion_id)

    def get_active_discussion(self) -> Discussion | None:
        if self._current_id is None:
            return None
        discussion = self._discussions[self._current_id]
        return discussion if discussion.is_running else None

    def list_discussions(self) -> list[Discussion]:
        return list(self._discussions.values())

    def get_report(self, discussion_id: str) -> DiscussionReport | None:
        return self._reports.get(discussion_id)

    def get_agents(self) -> list[Persona]:
        return list(self._personas)

    def get_agent(self, agent_id: str) -> Persona | None:
        return next((p for p in self._personas if p.id == agent_id), None)

    def get_token_usage_stats(self) -> TokenUsageStats:
        return self._budget.stats()

    def get_summarization_config(self) -> SummarizationConfig | None:
        return self._summarizer.get_config() if self._summarizer else None

    def update_summarization_config(self, **changes) -> SummarizationConfig:
        if self._summarizer is None:
            raise ValidationError("Summarization is not configured")
        return self._summarizer.update_config(**changes)

    # ------------------------------------------------------------------
    # Turn loop
    # ------------------------------------------------------------------

    async def _run(self, discussion: Discussion) -> None:
        reason: str | None = None
        error: str | None = None
        try:
            while True:
                reason = await self._boundary_reason(discussion)
                if reason:
                    break

                # Stop, pause and budgets may change during a summary call.
                if await self._maybe_summarize(discussion):
                    reason = await self._boundary_reason(discussion)
                    if reason:
                        break

                turn = self._scheduler.next_turn()
                if turn is None:
                    reason, error = REASON_ERROR, "No participants left to speak"
                    break
                if isinstance(turn, HumanTurn):
                    self._append_human(discussion, turn)
                else:
                    await self._agent_turn(discussion, turn)
            if reason != REASON_ERROR:
                self._flush_interventions(discussion)
        except Exception as exc:
            logger.exception("Discussion %s failed", discussion.id)
            reason, error = REASON_ERROR, str(exc)
        self._finish(discussion, reason, error)

    async def _boundary_reason(self, discussion: Discussion) -> str | None:
        """End reason at a turn boundary, after honoring a pending pause."""
        if not await self._honor_pause(discussion):
            return REASON_STOPPED
        reason = self._check_budget(discussion)
        if reason:
            return reason
        return self._scheduler.stop_reason(discussion)

    def _flush_interventions(self, discussion: Discussion) -> None:
        """Notes still queued when the loop ends go into the log unanswered."""
        pending = self._interventions.drain()
        if pending:
            logger.info("Appending %d pending interventions to %s", len(pending), discussion.id)
        for intervention in pending:
            self._append_human(discussion, HumanTurn(intervention))

    async def _honor_pause(self, discussion: Discussion) -> bool:
        """Block while paused. Returns False when a stop was requested."""
        with self._flags_lock:
            if self._stop_requested:
                return False
            if not self._pause_requested:
                return True
            discussion.transition(DiscussionStatus.PAUSED)
            self._wake.clear()
        self._budget.pause()
        logger.info("Discussion %s paused", discussion.id)
        self._persist(discussion.id, self._update_status, discussion)
        self.bus.publish(DiscussionPaused(discussion.id))

        while True:
            await self._wake.wait()
            with self._flags_lock:
                self._wake.clear()
                if self._stop_requested:
                    return False
                if not self._pause_requested:
                    discussion.transition(DiscussionStatus.ACTIVE)
                    break

        self._budget.resume()
        logger.info("Discussion %s resumed", discussion.id)
        self._persist(discussion.id, self._update_status, discussion)
        self.bus.publish(DiscussionResumed(discussion.id))
        return True

    def _check_budget(self, discussion: Discussion) -> str | None:
        """Exceeded cause when auto_stop is on; otherwise warn once per cause."""
        verdict = self._budget.check(self._scheduler.round_count)
        if not verdict.exceeded:
            return None
        if self._options.auto_stop:
            logger.info("Discussion %s auto-stopping: %s budget exhausted", discussion.id, verdict.cause)
            return verdict.cause
        if verdict.cause == CAUSE_ROUNDS:
            # The scheduler ends the discussion at max_rounds right after this check.
            return None
        if verdict.cause not in self._warned:
            self._warned.add(verdict.cause)
            logger.warning("Discussion %s exceeded its %s budget", discussion.id, verdict.cause)
            self.bus.publish(BudgetWarning(discussion.id, verdict.cause))
        return None

    async def _maybe_summarize(self, discussion: Discussion) -> bool:
        """Run a due summary. Returns True when a summary call was made."""
        if self._summarizer is None:
            return False
        window = self._summarizer.next_window(discussion)
        if window is None:
            return False
        self.bus.publish(SummarizationStarted(discussion.id, window))
        try:
            summary, usage = await self._summarizer.summarize(discussion, window)
        except SummarizationError as exc:
            logger.warning("Summarization failed for %s: %s", discussion.id, exc)
            self.bus.publish(SummarizationFailed(discussion.id, window, str(exc)))
            return True
        discussion.add_summary(summary)
        self._budget.record_summarization(usage)
        self.bus.publish(SummarizationCompleted(discussion.id, window, summary))
        return True

    def _append_human(self, discussion: Discussion, turn: HumanTurn) -> None:
        reply_to = discussion.messages[-1].id if discussion.messages else None
        message = to_message(turn.intervention, reply_to=reply_to)
        discussion.append_message(message)
        logger.info("Human intervention added to %s", discussion.id)
        self._persist(discussion.id, self._append_message, discussion.id, message)
        self.bus.publish(HumanInterventionAdded(discussion.id, turn.intervention))

    def _build_context(self, discussion: Discussion, round_number: int) -> TurnContext:
        recent = discussion.unsummarized_messages()
        limit = self._options.context_messages
        if limit > 0:
            recent = recent[-limit:]
        return TurnContext(
            discussion_id=discussion.id,
            topic=discussion.topic,
            round_number=round_number,
            summaries=list(discussion.summaries),
            recent_messages=recent,
            knowledge=discussion.metadata.get("knowledge"),
        )

    async def _agent_turn(self, discussion: Discussion, turn: AgentTurn) -> None:
        persona = turn.persona
        context = self._build_context(discussion, turn.round_number)
        try:
            result = await self._runtime.produce_turn(persona, context)
        except FatalAgentError as exc:
            self._scheduler.retire(persona.id)
            self.bus.publish(AgentError(discussion.id, persona.id, str(exc), fatal=True))
            return

        if result.outcome is TurnOutcome.DEGRADED:
            self._scheduler.complete_turn(persona.id)
            self.bus.publish(AgentError(discussion.id, persona.id, result.error or "", fatal=False))
            return

        self._budget.record_usage(result.usage)
        discussion.append_message(result.message)
        logger.info(
            "Round %d: %s spoke (%d tokens, %d attempt(s))",
            turn.round_number, persona.id, result.usage.total_tokens, result.attempts,
        )
        self._persist(discussion.id, self._append_message, discussion.id, result.message)
        self.bus.publish(AgentSpoke(discussion.id, result.message))

        if persona.is_mediator and self._evaluator is not None:
            evaluation = self._evaluator.evaluate(discussion, result.message, turn.round_number)
            if evaluation is not None:
                if evaluation.score is not None:
                    discussion.quality_score = evaluation.score
                if evaluation.decision:
                    discussion.decisions.append(evaluation.decision)
        self._scheduler.complete_turn(persona.id)

    def _finish(self, discussion: Discussion, reason: str, error: str | None) -> None:
        self._budget.stop()
        status = DiscussionStatus.ABORTED if reason in _ABORT_REASONS else DiscussionStatus.COMPLETED
        discussion.transition(status)
        discussion.ended_at = datetime.now(timezone.utc)
        discussion.metadata["end_reason"] = reason
        discussion.metadata["rounds"] = self._scheduler.round_count

        report = build_report(
            discussion,
            reason=reason,
            rounds=self._scheduler.round_count,
            tokens=self._budget.stats(),
            duration_sec=self._budget.elapsed(),
            error=error,
        )
        self._reports[discussion.id] = report
        logger.info(
            "Discussion %s %s (%s) after %d rounds, %d messages",
            discussion.id, status.value, reason, report.rounds, report.message_count,
        )
        self._persist(discussion.id, self._update_status, discussion)

        if reason == REASON_ERROR:
            self.bus.publish(DiscussionError(discussion.id, error or "unknown error"))
        elif reason == REASON_STOPPED:
            self.bus.publish(DiscussionStopped(discussion.id, report))
        elif reason == CAUSE_TIME:
            self.bus.publish(DiscussionTimeout(discussion.id, report))
        elif reason in (CAUSE_ROUNDS, CAUSE_TOKENS):
            self.bus.publish(DiscussionAutoStopped(discussion.id, report))
        else:
            self.bus.publish(DiscussionCompleted(discussion.id, report))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _wake_loop(self) -> None:
        if self._loop is not None and self._wake is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._wake.set)

    def _persist(self, discussion_id: str, write, *args) -> None:
        """Best-effort store write; failures are logged and swallowed."""
        try:
            write(*args)
        except Exception as exc:
            err = exc if isinstance(exc, PersistenceError) else PersistenceError(str(exc))
            logger.warning("Persistence failed for discussion %s: %s", discussion_id, err)

    def _persistence_enabled(self) -> bool:
        return self._store is not None and self._options.save_to_database

    def _save_discussion(self, discussion: Discussion) -> None:
        if self._persistence_enabled():
            self._store.save_discussion(discussion)

    def _update_status(self, discussion: Discussion) -> None:
        if self._persistence_enabled():
            self._store.update_status(discussion)

    def _append_message(self, discussion_id: str, message) -> None:
        if self._persistence_enabled():
            self._store.append_message(discussion_id, message)
