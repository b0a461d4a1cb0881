"""Schedule control: observe, pause, resume and trigger the digest schedule.

The remote scheduler service is the execution authority. This controller
never changes the local snapshot on its own: every change comes from a
round trip (action, then reconcile).

State Machine (as observed):
    ACTIVE  --pause-->  PAUSED
    PAUSED  --resume--> ACTIVE
    trigger_now is orthogonal and valid from either state.

Failure Semantics:
    - A failed action keeps the previous snapshot and surfaces the error.
    - Reconciliation only runs after a successful action, never after a
      failed one.
    - A failed reconcile keeps the last good snapshot; its error is
      reported separately from the action's own (successful) message.
    - A failed initial load leaves the view in the UNKNOWN state.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from errors import ActionError, FetchError
from models.schedule import ActionOutcome, ExecutionLogEntry, Schedule, ScheduleState
from observability.logging import log_context
from observability.tracing import trace_operation

logger = logging.getLogger(__name__)

DEFAULT_LOG_LIMIT = 10

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class ScheduleView:
    """Local view of the remote schedule.

    Attributes:
        schedule: Last good snapshot, None until one has been fetched
        logs: Last good execution log page, newest first
        message: Message from the most recent action
        error: Message from the most recent failed fetch
        refreshed_at: When schedule and logs were last replaced
    """

    schedule: Schedule | None = None
    logs: list[ExecutionLogEntry] = field(default_factory=list)
    message: str | None = None
    error: str | None = None
    refreshed_at: datetime | None = None

    @property
    def state(self) -> ScheduleState:
        if self.schedule is None:
            return ScheduleState.UNKNOWN
        return self.schedule.state


def _error_text(envelope: Any, fallback: str) -> str:
    if isinstance(envelope, dict):
        error = envelope.get("error")
        if isinstance(error, str) and error.strip():
            return error
    return fallback


def _succeeded(envelope: Any) -> bool:
    return isinstance(envelope, dict) and bool(envelope.get("success"))


def _sort_key(entry: ExecutionLogEntry) -> datetime:
    executed_at = entry.executed_at
    if executed_at is None:
        return _EPOCH
    if executed_at.tzinfo is None:
        return executed_at.replace(tzinfo=timezone.utc)
    return executed_at


class ScheduleController:
    """Controls one remote schedule and keeps a reconciled local view.

    Only one action may be in flight at a time; ``action_in_flight`` lets
    callers disable the controls while an action and its reconcile run.

    Example:
        >>> controller = ScheduleController(SchedulerClient(url), "sched-1")
        >>> await controller.load()
        >>> controller.view.state
        <ScheduleState.ACTIVE: 'active'>
        >>> (await controller.set_active(False)).message
        'Schedule paused'
    """

    def __init__(self, client: Any, schedule_id: str, log_limit: int = DEFAULT_LOG_LIMIT):
        """Initialize the controller.

        Args:
            client: Scheduler service client (see clients.scheduler)
            schedule_id: Identifier of the schedule to control
            log_limit: Number of recent executions to keep in the view
        """
        self.client = client
        self.schedule_id = schedule_id
        self.log_limit = log_limit
        self.view = ScheduleView()
        self.action_in_flight = False

    # =========================================================================
    # Reads
    # =========================================================================

    async def fetch_schedule_state(self) -> Schedule:
        """Fetch a read-only snapshot of the schedule.

        Falls back to looking the schedule up in the full listing when the
        direct read fails.

        Raises:
            FetchError: Neither read produced the schedule
        """
        envelope = await self.client.get_schedule(self.schedule_id)
        if _succeeded(envelope) and isinstance(envelope.get("schedule"), dict):
            return self._parse_schedule(envelope["schedule"])

        error = _error_text(envelope, "Failed to load schedule")
        logger.debug("Direct schedule read failed, trying listing | error=%s", error)

        listing = await self.client.list_schedules()
        if _succeeded(listing):
            for raw in listing.get("schedules") or []:
                if isinstance(raw, dict) and raw.get("id") == self.schedule_id:
                    return self._parse_schedule(raw)
        raise FetchError(error)

    def _parse_schedule(self, raw: dict[str, Any]) -> Schedule:
        try:
            return Schedule.model_validate(raw)
        except ValidationError as e:
            raise FetchError(f"Malformed schedule from service: {e.error_count()} invalid field(s)") from e

    async def fetch_execution_log(self, limit: int | None = None) -> list[ExecutionLogEntry]:
        """Fetch the most recent executions, newest first.

        Entries that violate the execution invariants are dropped.

        Raises:
            FetchError: The log could not be read
        """
        if limit is None:
            limit = self.log_limit
        envelope = await self.client.get_execution_log(self.schedule_id, limit)
        if not _succeeded(envelope):
            raise FetchError(_error_text(envelope, "Failed to load execution history"))

        raw_entries = envelope.get("executions")
        if not isinstance(raw_entries, list):
            raw_entries = []

        entries: list[ExecutionLogEntry] = []
        for raw in raw_entries:
            try:
                entries.append(ExecutionLogEntry.model_validate(raw))
            except ValidationError as e:
                logger.warning("Dropped malformed execution entry | errors=%d", e.error_count())

        entries.sort(key=_sort_key, reverse=True)
        return entries[:limit]

    async def load(self) -> ScheduleView:
        """Initial load on view entry.

        Schedule and log are loaded independently; whichever fails leaves
        its part of the view empty. A failed schedule read leaves the view
        in the UNKNOWN state rather than defaulting to ACTIVE or PAUSED.
        """
        errors = []
        try:
            self.view.schedule = await self.fetch_schedule_state()
        except FetchError as e:
            self.view.schedule = None
            errors.append(e.message)
            logger.warning("Schedule load failed | schedule=%s error=%s", self.schedule_id, e)

        try:
            self.view.logs = await self.fetch_execution_log()
        except FetchError as e:
            self.view.logs = []
            errors.append(e.message)
            logger.warning("Execution log load failed | schedule=%s error=%s", self.schedule_id, e)

        self.view.error = "; ".join(errors) or None
        self.view.refreshed_at = datetime.now(timezone.utc)
        return self.view

    async def reconcile(self) -> bool:
        """Re-fetch schedule and log and replace the view atomically.

        The view is replaced only when both reads succeed; otherwise the
        last good snapshot is kept and the fetch error recorded.

        Returns:
            True if the view was replaced
        """
        try:
            schedule = await self.fetch_schedule_state()
            logs = await self.fetch_execution_log()
        except FetchError as e:
            self.view.error = e.message
            logger.warning("Reconcile failed, keeping last snapshot | error=%s", e)
            return False

        self.view.schedule = schedule
        self.view.logs = logs
        self.view.error = None
        self.view.refreshed_at = datetime.now(timezone.utc)
        logger.debug(
            "Reconciled | state=%s executions=%d", schedule.state.value, len(logs)
        )
        return True

    # =========================================================================
    # Actions
    # =========================================================================

    async def set_active(self, active: bool) -> ActionOutcome:
        """Pause (active=False) or resume (active=True) the schedule.

        Requesting the state the schedule is already in is a harmless
        success that makes no remote call.

        Raises:
            ActionError: State unknown, action already in flight, or the
                service rejected the action
        """
        current = self.view.state
        if current is ScheduleState.UNKNOWN:
            raise ActionError("Schedule state is unknown; refresh before changing it")

        target = ScheduleState.ACTIVE if active else ScheduleState.PAUSED
        if current is target:
            outcome = ActionOutcome(success=True, message=f"Schedule already {target.value}")
            self.view.message = outcome.message
            logger.info("Schedule unchanged | state=%s", target.value)
            return outcome

        if active:
            return await self._perform(
                "resume", self.client.resume,
                success="Schedule resumed",
                failure="Failed to resume",
                errored="Error toggling schedule",
            )
        return await self._perform(
            "pause", self.client.pause,
            success="Schedule paused",
            failure="Failed to pause",
            errored="Error toggling schedule",
        )

    async def toggle(self) -> ActionOutcome:
        """Pause an active schedule or resume a paused one."""
        current = self.view.state
        if current is ScheduleState.UNKNOWN:
            raise ActionError("Schedule state is unknown; refresh before changing it")
        return await self.set_active(current is ScheduleState.PAUSED)

    async def trigger_now(self) -> ActionOutcome:
        """Request an immediate execution, independent of the cron schedule.

        Only confirms the trigger was accepted; it does not wait for the
        execution and does not change the ACTIVE/PAUSED state.

        Raises:
            ActionError: Action already in flight or the service rejected it
        """
        return await self._perform(
            "trigger", self.client.trigger_now,
            success="Schedule triggered -- execution started",
            failure="Failed to trigger",
            errored="Error triggering schedule",
        )

    async def _perform(
        self,
        name: str,
        call: Any,
        success: str,
        failure: str,
        errored: str,
    ) -> ActionOutcome:
        if self.action_in_flight:
            raise ActionError("Another schedule action is in progress")

        self.action_in_flight = True
        self.view.message = None
        try:
            with log_context(uuid.uuid4().hex[:8], f"schedule.{name}"), \
                    trace_operation(f"schedule_{name}", {"schedule_id": self.schedule_id}) as attrs:
                try:
                    envelope = await call(self.schedule_id)
                except Exception as e:
                    logger.error("Schedule %s raised | error=%s", name, e, exc_info=True)
                    self.view.message = errored
                    attrs["outcome"] = "errored"
                    raise ActionError(errored) from e

                if not _succeeded(envelope):
                    message = _error_text(envelope, failure)
                    self.view.message = message
                    attrs["outcome"] = "failed"
                    logger.warning("Schedule %s failed | error=%s", name, message)
                    raise ActionError(message)

                self.view.message = success
                attrs["outcome"] = "accepted"
                logger.info("Schedule %s accepted | schedule=%s", name, self.schedule_id)

                # The action's success stands even if this refresh fails
                await self.reconcile()
                return ActionOutcome(success=True, message=success)
        finally:
            self.action_in_flight = False
