# officehub/kpi.py
from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from pymongo.errors import PyMongoError

from .errors import AuthenticationError, AuthorizationError, OfficeHubError, ValidationError
from .models import (
    Assignee,
    AwardResult,
    HistoryKind,
    Identity,
    KeyOutcome,
    KpiHistoryEntry,
    KpiKey,
    KpiRecord,
    OutcomeStatus,
    RemovalResult,
    ResetResult,
    parse_timestamp,
    utcnow,
)
from .policy import can_manage_kpi
from .stores import KpiLedger

logger = logging.getLogger(__name__)

AWARD_REASON = "Calendar Update Completed"
REVERSAL_REASON = "Calendar Update Deleted"
RESET_REASON = "Admin Reset - All KPI Points"


class KpiAwardEngine:
    """
    Scores completed work units into the per-(user, department) KPI ledger.

    On-time completion earns `ontime_points`, late completion `late_points`;
    there is no zero-point case. Each assignee is updated independently and a
    failure for one never blocks the others.
    """

    def __init__(
        self,
        ledger: KpiLedger,
        ontime_points: float = 1.0,
        late_points: float = 0.5,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.ledger = ledger
        self.ontime_points = ontime_points
        self.late_points = late_points
        self.clock = clock

    def point_value(self, deadline: Any, completed_at: Any) -> tuple:
        on_time = parse_timestamp(completed_at) <= parse_timestamp(deadline)
        return on_time, (self.ontime_points if on_time else self.late_points)

    # ---------- award ----------
    def award_points(
        self,
        work_unit_id: str,
        department: str,
        assignees: Iterable[Assignee],
        period_month: str,
        period_year: int,
        work_unit_title: str,
        deadline: Any,
        completed_at: Any,
    ) -> AwardResult:
        if not work_unit_id:
            raise ValidationError("workUnitId is required", field="workUnitId")
        if not department:
            raise ValidationError("department is required", field="department")
        try:
            on_time, points = self.point_value(deadline, completed_at)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid deadline or completion time: {e}", field="deadline") from e

        result = AwardResult(work_unit_id=work_unit_id, department=department, on_time=on_time, points=points)
        for assignee in assignees:
            key = KpiKey(user_id=assignee.id, department=department)
            try:
                outcome = self._award_one(
                    key, assignee, points, on_time, work_unit_id, period_month, period_year, work_unit_title
                )
            except (OfficeHubError, PyMongoError) as exc:
                logger.exception("Failed to award KPI points to %s for work unit %s", key, work_unit_id)
                outcome = KeyOutcome(key=key, status=OutcomeStatus.FAILED, error=str(exc))
            result.outcomes.append(outcome)

        if result.failed:
            logger.warning(
                "KPI award for %s/%s finished with %d of %d assignee(s) failed",
                work_unit_id, department, len(result.failed), len(result.outcomes),
            )
        return result

    def _award_one(
        self,
        key: KpiKey,
        assignee: Assignee,
        points: float,
        on_time: bool,
        work_unit_id: str,
        period_month: str,
        period_year: int,
        work_unit_title: str,
    ) -> KeyOutcome:
        now = self.clock()
        # awards written before claims existed only show up in the history
        if not self.ledger.claim_award(work_unit_id, key, now) or self.ledger.awards_for(
            work_unit_id, key.department, key.user_id
        ):
            logger.warning(
                "KPI points already awarded to %s for %s in work unit %s, skipping",
                assignee.name or key.user_id, key.department, work_unit_id,
            )
            return KeyOutcome(key=key, status=OutcomeStatus.SKIPPED, record=self.ledger.get(key))

        def apply(rec: KpiRecord) -> KpiRecord:
            if assignee.name:
                rec.user_name = assignee.name
            rec.tasks_assigned += 1
            if on_time:
                rec.tasks_completed_on_time += 1
            else:
                rec.tasks_completed_late += 1
            rec.effective_points += points
            rec.last_updated = now
            return rec.rescored()

        try:
            record = self.ledger.upsert_by_key(key, apply, user_name=assignee.name, now=now)
        except (OfficeHubError, PyMongoError):
            # nothing was counted, so the award may be retried
            self.ledger.release_award(work_unit_id, key)
            raise
        self.ledger.append_history(
            KpiHistoryEntry(
                kind=HistoryKind.AWARD,
                user_id=key.user_id,
                user_name=assignee.name,
                department=key.department,
                points=points,
                on_time=on_time,
                work_unit_id=work_unit_id,
                task_details=work_unit_title,
                month=period_month,
                year=period_year,
                reason=AWARD_REASON,
                awarded_at=now,
            )
        )
        logger.info(
            "Awarded %s KPI point(s) to %s for %s work in %s %s",
            points, assignee.name or key.user_id, key.department, period_month, period_year,
        )
        return KeyOutcome(key=key, status=OutcomeStatus.AWARDED, record=record)

    # ---------- reversal ----------
    def remove_points(self, work_unit_id: str) -> RemovalResult:
        result = RemovalResult(work_unit_id=work_unit_id)
        if not work_unit_id:
            return result

        entries = self.ledger.awards_for(work_unit_id)
        if not entries:
            logger.info("No KPI points found for work unit %s", work_unit_id)
            return result

        groups: Dict[KpiKey, List[KpiHistoryEntry]] = defaultdict(list)
        for entry in entries:
            groups[entry.key].append(entry)
        logger.info("Reversing %d KPI award(s) across %d key(s) for %s", len(entries), len(groups), work_unit_id)

        for key, group in groups.items():
            try:
                record = self._reverse_group(key, group)
            except (OfficeHubError, PyMongoError) as exc:
                logger.exception("Failed to remove KPI points from %s for work unit %s", key, work_unit_id)
                result.outcomes.append(KeyOutcome(key=key, status=OutcomeStatus.FAILED, error=str(exc)))
                continue
            result.outcomes.append(KeyOutcome(key=key, status=OutcomeStatus.REVERSED, record=record))
            result.entries_reversed += len(group)
        return result

    def _was_on_time(self, entry: KpiHistoryEntry) -> bool:
        if entry.on_time is not None:
            return entry.on_time
        return entry.points >= self.ontime_points

    def _reverse_group(self, key: KpiKey, group: List[KpiHistoryEntry]) -> Optional[KpiRecord]:
        now = self.clock()
        on_time = sum(1 for e in group if self._was_on_time(e))
        late = len(group) - on_time
        total = sum(e.points for e in group)
        clamped = {"hit": False}

        def revert(rec: KpiRecord) -> KpiRecord:
            clamped["hit"] = (
                rec.tasks_assigned < len(group)
                or rec.tasks_completed_on_time < on_time
                or rec.tasks_completed_late < late
                or rec.effective_points < total
            )
            rec.tasks_assigned = max(0, rec.tasks_assigned - len(group))
            rec.tasks_completed_on_time = max(0, rec.tasks_completed_on_time - on_time)
            rec.tasks_completed_late = max(0, rec.tasks_completed_late - late)
            rec.effective_points = max(0.0, rec.effective_points - total)
            rec.last_updated = now
            return rec.rescored()

        record = self.ledger.upsert_by_key(key, revert, now=now, create=False)
        if record is None:
            logger.warning("KPI record %s not found, skipping point removal", key)
        elif clamped["hit"]:
            logger.warning("KPI record %s would have gone negative; clamped at zero", key)

        for entry in group:
            self.ledger.append_history(
                KpiHistoryEntry(
                    kind=HistoryKind.REVERSAL,
                    user_id=entry.user_id,
                    user_name=entry.user_name,
                    department=entry.department,
                    points=-entry.points,
                    on_time=entry.on_time,
                    work_unit_id=entry.work_unit_id,
                    task_details=entry.task_details,
                    month=entry.month,
                    year=entry.year,
                    reason=REVERSAL_REASON,
                    awarded_at=now,
                    original_award_id=entry.id,
                )
            )
        self.ledger.mark_reversed([e.id for e in group if e.id], now)
        for work_unit_id in {e.work_unit_id for e in group}:
            self.ledger.release_award(work_unit_id, key)
        logger.info("Removed %s point(s) from %s", total, key)
        return record

    # ---------- reset ----------
    def reset_all(self, actor: Optional[Identity]) -> ResetResult:
        """Zeroes every KPI record (Admin only), leaving a reset entry per record."""
        if actor is None or not actor.uid:
            raise AuthenticationError("You must be signed in")
        if not can_manage_kpi(actor.role):
            raise AuthorizationError("Only administrators can reset KPI points")

        now = self.clock()
        count = 0
        try:
            for rec in self.ledger.all():
                previous = rec.effective_points

                def zero(r: KpiRecord) -> KpiRecord:
                    r.tasks_assigned = 0
                    r.tasks_completed_on_time = 0
                    r.tasks_completed_late = 0
                    r.effective_points = 0.0
                    r.last_updated = now
                    return r.rescored()

                self.ledger.upsert_by_key(rec.key, zero, now=now, create=False)
                self.ledger.append_history(
                    KpiHistoryEntry(
                        kind=HistoryKind.RESET,
                        user_id=rec.user_id,
                        user_name=rec.user_name,
                        department=rec.department,
                        points=-previous,
                        work_unit_id="system_reset",
                        task_details=f"System-wide KPI reset by {actor.name or actor.uid}",
                        month=now.strftime("%B"),
                        year=now.year,
                        reason=RESET_REASON,
                        awarded_at=now,
                        actor_id=actor.uid,
                        actor_name=actor.name,
                        previous_points=previous,
                    )
                )
                count += 1
        except (OfficeHubError, PyMongoError) as exc:
            logger.exception("Failed to reset KPI points after %d record(s)", count)
            return ResetResult(success=False, records_reset=count, error=str(exc))

        logger.info("Reset KPI points for %d record(s) by %s", count, actor.uid)
        return ResetResult(success=True, records_reset=count)
