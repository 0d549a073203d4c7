"""
Document analysis workflow for a single claim.

One controller per claim, one operation in flight at a time. Every
collaborator call goes through ``_call`` so failures and timeouts surface
as ExternalCallFailure; the controller then falls back to the nearest safe
phase, keeps the message in ``last_error`` and re-raises so the caller can
offer a retry.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any, Awaitable, Callable, Iterable, List, Optional, TypeVar
from uuid import UUID

from claimcoach.adjudication.verdict import (
    ArtifactState,
    VerdictAnalysis,
    VerdictStatus,
    WorkflowAction,
    available_actions,
    parse_verdict_analysis,
    step_completion_blocker,
)
from claimcoach.carrier_estimates.models import ParseStatus
from claimcoach.carrier_estimates.service import validate_upload
from claimcoach.config import settings
from claimcoach.core.events.bus import EventBus, EventType, event_bus
from claimcoach.exceptions import (
    AnalysisInProgress,
    ExternalCallFailure,
    InvalidPhaseTransition,
    UnknownVerdict,
)
from claimcoach.workflow.collaborators import Collaborators, ParseResult
from claimcoach.workflow.phases import BUSY_PHASES, SAFE_PHASE_ON_FAILURE, Phase, WorkflowSnapshot, derive_state
from claimcoach.workflow.polling import PollTimeout, wait_for_condition

logger = logging.getLogger(__name__)

T = TypeVar("T")

ADJUDICATION_STEP = 6
NEXT_STEP_AFTER_ADJUDICATION = 7

TERMINAL_PARSE_STATUSES = (ParseStatus.COMPLETED, ParseStatus.FAILED)


def _get(result: Any, key: str) -> Any:
    if isinstance(result, dict):
        return result[key]
    return getattr(result, key)


class DocumentAnalysisWorkflow:
    def __init__(
        self,
        claim_id: UUID,
        collaborators: Collaborators,
        *,
        bus: Optional[EventBus] = None,
        steps_completed: Iterable[int] = (),
        poll_interval: Optional[float] = None,
        poll_backoff: Optional[float] = None,
        poll_max_interval: Optional[float] = None,
        poll_timeout: Optional[float] = None,
        call_timeout: Optional[float] = None,
        sleep_fn: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.claim_id = claim_id
        self.collaborators = collaborators
        self.bus = bus or event_bus
        self.steps_completed = set(steps_completed)

        self.poll_interval = poll_interval if poll_interval is not None else settings.PARSE_POLL_INTERVAL_SECONDS
        self.poll_backoff = poll_backoff if poll_backoff is not None else settings.PARSE_POLL_BACKOFF
        self.poll_max_interval = (
            poll_max_interval if poll_max_interval is not None else settings.PARSE_POLL_MAX_INTERVAL_SECONDS
        )
        self.poll_timeout = poll_timeout if poll_timeout is not None else settings.PARSE_POLL_TIMEOUT_SECONDS
        self.call_timeout = call_timeout if call_timeout is not None else settings.EXTERNAL_CALL_TIMEOUT_SECONDS
        self.sleep_fn = sleep_fn

        self.phase = Phase.IDLE
        self.document_id: Optional[UUID] = None
        self.audit_report_id: Optional[UUID] = None
        self.verdict: Optional[VerdictAnalysis] = None
        self.artifacts = ArtifactState()
        self.last_error: Optional[str] = None
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Construction from storage
    # ------------------------------------------------------------------

    @classmethod
    def from_persisted(cls, claim, document, audit_report, collaborators: Collaborators, **kwargs) -> DocumentAnalysisWorkflow:
        workflow = cls(
            claim.id,
            collaborators,
            steps_completed=claim.steps_completed or (),
            **kwargs,
        )
        workflow.restore(derive_state(claim, document, audit_report))
        return workflow

    def restore(self, snapshot: WorkflowSnapshot, steps_completed: Optional[Iterable[int]] = None) -> None:
        # an unpolled PARSING workflow holds no lock and may be reloaded
        if self.in_flight:
            raise InvalidPhaseTransition(f"Cannot reload while {self.phase.value}", claim_id=self.claim_id)
        self.phase = snapshot.phase
        self.document_id = snapshot.document_id
        self.audit_report_id = snapshot.audit_report_id
        self.verdict = snapshot.verdict
        self.artifacts = snapshot.artifacts
        if steps_completed is not None:
            self.steps_completed = set(steps_completed)

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def busy(self) -> bool:
        return self._lock.locked() or self.phase in BUSY_PHASES

    @property
    def in_flight(self) -> bool:
        """A collaborator call (or parse poll) is running right now."""
        return self._lock.locked()

    @property
    def step_completed(self) -> bool:
        return ADJUDICATION_STEP in self.steps_completed

    @property
    def verdict_status(self) -> Optional[VerdictStatus]:
        return self.verdict.status if self.verdict else None

    def available_actions(self) -> List[WorkflowAction]:
        if self.busy:
            return []
        if self.phase == Phase.IDLE:
            return [WorkflowAction.UPLOAD_DOCUMENT]
        if self.phase == Phase.READY:
            return [WorkflowAction.RUN_ANALYSIS, WorkflowAction.UPLOAD_DOCUMENT]
        if self.phase == Phase.VERDICT and self.verdict:
            return available_actions(self.verdict.status, self.artifacts, self.step_completed)
        return []

    def step_completion_blocker(self) -> Optional[str]:
        if self.phase != Phase.VERDICT or not self.verdict:
            return "No verdict yet"
        return step_completion_blocker(self.verdict.status, self.artifacts)

    def snapshot(self) -> WorkflowSnapshot:
        return WorkflowSnapshot(
            phase=self.phase,
            document_id=self.document_id,
            audit_report_id=self.audit_report_id,
            verdict=self.verdict,
            artifacts=self.artifacts,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _set_phase(self, phase: Phase) -> None:
        previous = self.phase
        self.phase = phase
        if previous != phase:
            logger.info(f"Claim {self.claim_id} workflow {previous.value} -> {phase.value}")
            await self.bus.emit(
                EventType.WORKFLOW_PHASE_CHANGED, self.claim_id,
                previous=previous.value, phase=phase.value, error=self.last_error,
            )

    async def _fail(self, error: ExternalCallFailure) -> None:
        self.last_error = error.message
        logger.error(f"Claim {self.claim_id} workflow failed during {self.phase.value}: {error.message}")
        await self._set_phase(SAFE_PHASE_ON_FAILURE.get(self.phase, self.phase))

    async def _call(self, operation: str, coro: Awaitable[T]) -> T:
        try:
            if self.call_timeout:
                return await asyncio.wait_for(coro, self.call_timeout)
            return await coro
        except (ExternalCallFailure, UnknownVerdict):
            raise
        except TimeoutError:
            raise ExternalCallFailure(operation, f"timed out after {self.call_timeout}s", claim_id=self.claim_id)
        except Exception as e:
            raise ExternalCallFailure(operation, str(e), claim_id=self.claim_id)

    def _enter(self, *allowed: Phase) -> None:
        """Reject the request unless the workflow is idle in one of ``allowed``.

        Runs synchronously right before the lock is taken, so two requests
        arriving together cannot both pass.
        """
        if self.phase == Phase.ANALYZING:
            raise AnalysisInProgress("An analysis is already running for this claim", claim_id=self.claim_id)
        if self.busy:
            raise InvalidPhaseTransition(
                f"Another operation is in progress ({self.phase.value})", claim_id=self.claim_id
            )
        if self.phase not in allowed:
            raise InvalidPhaseTransition(
                f"Not allowed while {self.phase.value}", claim_id=self.claim_id
            )

    def _require_verdict(self, *statuses: VerdictStatus) -> VerdictAnalysis:
        if self.phase != Phase.VERDICT or self.verdict is None:
            raise InvalidPhaseTransition("No verdict yet", claim_id=self.claim_id)
        if statuses and self.verdict.status not in statuses:
            raise InvalidPhaseTransition(
                f"Not available for a {self.verdict.status.value} verdict", claim_id=self.claim_id
            )
        return self.verdict

    def _clear_cycle(self) -> None:
        self.document_id = None
        self.audit_report_id = None
        self.verdict = None
        self.artifacts = ArtifactState()

    # ------------------------------------------------------------------
    # Upload + parse
    # ------------------------------------------------------------------

    def select_file(self, file_name: Optional[str], content_type: Optional[str], content: Optional[bytes]) -> None:
        """Validate a candidate upload. Raises ValidationError; never changes phase.

        Size is not capped here; the upload destination enforces the limit.
        """
        validate_upload(file_name, content_type, len(content) if content is not None else 0)

    async def upload(self, file_name: str, content_type: Optional[str], content: bytes) -> UUID:
        """Store the file and trigger parsing. Leaves the workflow in PARSING.

        Uploading over an existing verdict starts a new cycle, but only once
        the new file is confirmed: the active report is then superseded (and
        kept). Until that point a failure or an abandoned upload returns to
        the phase the workflow started from with its verdict intact.
        """
        self.select_file(file_name, content_type, content)
        self._enter(Phase.IDLE, Phase.READY, Phase.VERDICT)
        if self.phase == Phase.VERDICT and self.step_completed:
            raise InvalidPhaseTransition("Adjudication step is already complete", claim_id=self.claim_id)

        async with self._lock:
            self.last_error = None
            prior = self.snapshot()
            started = False
            await self._set_phase(Phase.UPLOADING)
            try:
                destination = await self._call(
                    "upload",
                    self.collaborators.request_upload_destination(
                        self.claim_id,
                        {"file_name": file_name, "content_type": content_type, "size": len(content)},
                    ),
                )
                document_id = _get(destination, "document_id")
                await self._call("upload", self.collaborators.transfer(_get(destination, "write_target"), content))
                await self._call("upload", self.collaborators.confirm_upload(document_id))

                if prior.phase == Phase.VERDICT:
                    await self._call(
                        "supersede",
                        self.collaborators.supersede_report(self.claim_id, keep_document_id=document_id),
                    )
                    await self.bus.emit(
                        EventType.AUDIT_REPORT_SUPERSEDED, self.claim_id,
                        audit_report_id=str(prior.audit_report_id),
                    )
                self._clear_cycle()
                self.document_id = document_id
                started = True
                await self._call("parse", self.collaborators.parse_document(document_id))
            except ExternalCallFailure as e:
                if started:
                    await self._fail(e)
                else:
                    await self._abort_upload(prior, e.message)
                raise
            except asyncio.CancelledError:
                # a confirmed upload has started its cycle and cannot be dropped
                if started:
                    await self._set_phase(Phase.PARSING)
                else:
                    await self._abort_upload(prior, "Upload abandoned")
                raise

            await self._set_phase(Phase.PARSING)
        return document_id

    async def _abort_upload(self, prior: WorkflowSnapshot, message: str) -> None:
        self.last_error = message
        logger.error(f"Claim {self.claim_id} upload failed before confirmation: {message}")
        await self._set_phase(prior.phase)

    async def await_parse(self) -> ParseResult:
        """Poll the parser until the current document is completed or failed."""
        if self.phase != Phase.PARSING:
            raise InvalidPhaseTransition(f"Nothing is parsing (phase {self.phase.value})", claim_id=self.claim_id)
        if self._lock.locked():
            raise InvalidPhaseTransition("Parse status is already being polled", claim_id=self.claim_id)

        async with self._lock:
            document_id = self.document_id

            async def check() -> ParseResult:
                return await self._call("parse", self.collaborators.get_parse_status(document_id))

            failure: Optional[ExternalCallFailure] = None
            result: Optional[ParseResult] = None
            try:
                result = await wait_for_condition(
                    check,
                    lambda r: ParseStatus(r["status"]) in TERMINAL_PARSE_STATUSES,
                    interval=self.poll_interval,
                    timeout=self.poll_timeout,
                    backoff=self.poll_backoff,
                    max_interval=self.poll_max_interval,
                    sleep_fn=self.sleep_fn,
                )
            except PollTimeout as e:
                failure = ExternalCallFailure("parse", str(e), claim_id=self.claim_id)
            except ExternalCallFailure as e:
                failure = e

            if failure is None and ParseStatus(result["status"]) == ParseStatus.FAILED:
                failure = ExternalCallFailure(
                    "parse", result.get("error") or "the carrier estimate could not be read", claim_id=self.claim_id
                )
            if failure is not None:
                await self._fail(failure)
                raise failure

            self.last_error = None
            await self._set_phase(Phase.READY)
        return result

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    async def analyze(self) -> VerdictAnalysis:
        self._enter(Phase.READY)

        async with self._lock:
            self.last_error = None
            await self._set_phase(Phase.ANALYZING)
            try:
                estimate = await self._call(
                    "estimate", self.collaborators.generate_industry_estimate(self.claim_id)
                )
                audit_report_id = _get(estimate, "audit_report_id")
                analysis = await self._call(
                    "analysis", self.collaborators.run_analysis(self.claim_id, audit_report_id)
                )
                if not isinstance(analysis, VerdictAnalysis):
                    analysis = parse_verdict_analysis(analysis)
                    if analysis is None:
                        raise ExternalCallFailure("analysis", "no analysis returned", claim_id=self.claim_id)
            except ExternalCallFailure as e:
                await self._fail(e)
                raise
            except UnknownVerdict as e:
                self.last_error = e.message
                await self._set_phase(Phase.READY)
                raise

            self.audit_report_id = audit_report_id
            self.verdict = analysis
            self.artifacts = ArtifactState()
            await self._set_phase(Phase.VERDICT)

        await self.bus.emit(
            EventType.VERDICT_REACHED, self.claim_id,
            audit_report_id=str(audit_report_id), status=analysis.status.value,
        )
        return analysis

    # ------------------------------------------------------------------
    # Follow-up artifacts
    # ------------------------------------------------------------------

    async def generate_dispute_letter(self) -> str:
        self._enter(Phase.VERDICT)
        self._require_verdict(VerdictStatus.DISPUTE_OFFER)

        async with self._lock:
            self.last_error = None
            await self._set_phase(Phase.LETTER_GENERATING)
            try:
                letter = await self._call(
                    "dispute letter",
                    self.collaborators.generate_dispute_letter(self.claim_id, self.audit_report_id),
                )
            except ExternalCallFailure as e:
                await self._fail(e)
                raise

            self.artifacts = replace(self.artifacts, dispute_letter=letter)
            await self._set_phase(Phase.VERDICT)

        await self.bus.emit(
            EventType.DISPUTE_LETTER_GENERATED, self.claim_id, audit_report_id=str(self.audit_report_id)
        )
        return letter

    async def generate_owner_pitch(self) -> str:
        self._enter(Phase.VERDICT)
        self._require_verdict(VerdictStatus.LEGAL_REVIEW)
        if self.artifacts.owner_pitch_acknowledged:
            raise InvalidPhaseTransition("Owner pitch was already sent", claim_id=self.claim_id)

        async with self._lock:
            self.last_error = None
            try:
                pitch = await self._call(
                    "owner pitch",
                    self.collaborators.generate_owner_pitch(self.claim_id, self.audit_report_id),
                )
            except ExternalCallFailure as e:
                self.last_error = e.message
                logger.error(f"Claim {self.claim_id} owner pitch failed: {e.message}")
                raise
            self.artifacts = replace(self.artifacts, owner_pitch=pitch)

        await self.bus.emit(
            EventType.OWNER_PITCH_GENERATED, self.claim_id, audit_report_id=str(self.audit_report_id)
        )
        return pitch

    async def acknowledge_owner_pitch(self) -> None:
        self._require_verdict(VerdictStatus.LEGAL_REVIEW)
        if not self.artifacts.has_owner_pitch:
            raise InvalidPhaseTransition(
                "Generate the owner pitch before confirming it was sent", claim_id=self.claim_id
            )
        if self.artifacts.owner_pitch_acknowledged:
            return
        self._enter(Phase.VERDICT)

        async with self._lock:
            try:
                await self._call(
                    "acknowledge pitch",
                    self.collaborators.acknowledge_owner_pitch(self.claim_id, self.audit_report_id),
                )
            except ExternalCallFailure as e:
                self.last_error = e.message
                raise
            self.artifacts = replace(self.artifacts, owner_pitch_acknowledged=True)

        await self.bus.emit(
            EventType.OWNER_PITCH_ACKNOWLEDGED, self.claim_id, audit_report_id=str(self.audit_report_id)
        )

    # ------------------------------------------------------------------
    # Step completion and new cycles
    # ------------------------------------------------------------------

    async def complete_step(self) -> Any:
        """Mark claim step 6 complete and move the cursor to step 7."""
        self._enter(Phase.VERDICT)
        verdict = self._require_verdict()
        blocker = step_completion_blocker(verdict.status, self.artifacts)
        if blocker:
            raise InvalidPhaseTransition(blocker, claim_id=self.claim_id)

        async with self._lock:
            steps = self.steps_completed | {ADJUDICATION_STEP}
            claim = await self._call(
                "complete step",
                self.collaborators.update_claim_step(self.claim_id, NEXT_STEP_AFTER_ADJUDICATION, sorted(steps)),
            )
            self.steps_completed = steps

        await self.bus.emit(
            EventType.ADJUDICATION_STEP_COMPLETED, self.claim_id,
            status=verdict.status.value, audit_report_id=str(self.audit_report_id),
        )
        return claim

    async def _close_cycle(self) -> None:
        async with self._lock:
            superseded = self.audit_report_id
            await self._call("supersede", self.collaborators.supersede_report(self.claim_id))
            self._clear_cycle()
            self.last_error = None
            await self._set_phase(Phase.IDLE)

        await self.bus.emit(
            EventType.AUDIT_REPORT_SUPERSEDED, self.claim_id, audit_report_id=str(superseded)
        )

    async def reset(self) -> None:
        """The only way forward from NEED_DOCS: archive the cycle and wait for a new upload."""
        self._enter(Phase.VERDICT)
        self._require_verdict(VerdictStatus.NEED_DOCS)
        await self._close_cycle()

    async def start_new_cycle(self) -> None:
        """Discard the current verdict (kept for history) to re-adjudicate a new offer."""
        self._enter(Phase.VERDICT)
        verdict = self._require_verdict()
        if verdict.status == VerdictStatus.NEED_DOCS:
            raise InvalidPhaseTransition("Use reset for a NEED_DOCS verdict", claim_id=self.claim_id)
        if self.step_completed:
            raise InvalidPhaseTransition("Adjudication step is already complete", claim_id=self.claim_id)
        await self._close_cycle()
