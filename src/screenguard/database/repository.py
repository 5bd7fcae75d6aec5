"""SQLAlchemy-backed storage for restrictions, limits, milestones and sessions.

Every public method opens a short-lived session, so one store can be
shared across threads. Any SQLAlchemyError is re-raised as StorageError;
callers decide whether to fail open (blocking checks) or propagate
(writes).
"""
from contextlib import contextmanager
from functools import partial
from datetime import date, datetime, timedelta
from typing import Callable, Iterator, List, Optional, Sequence

from sqlalchemy import and_, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..exceptions import NotFoundError, SessionAlreadyActiveError, LimitAlreadyActiveError, StorageError
from ..utils.clock import day_bounds
from .models import (
    AppUsage, FocusSession, ProgressiveLimit, ProgressiveMilestone, TimeRestriction,
    init_database,
)


class TrackerStore:
    """Storage collaborator used by the managers."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @classmethod
    def from_url(cls, db_url: str) -> "TrackerStore":
        return cls(init_database(db_url))

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def _storage_errors(self, action: str, conflict: Optional[Callable[[], Exception]] = None):
        try:
            yield
        except IntegrityError as e:
            if conflict is not None:
                raise conflict() from e
            raise StorageError(f"Failed to {action}: {e}") from e
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to {action}: {e}") from e

    # === Time restrictions ===

    def list_restrictions(self, enabled_only: bool = False) -> List[TimeRestriction]:
        with self._storage_errors("list time restrictions"), self._session() as session:
            query = session.query(TimeRestriction)
            if enabled_only:
                query = query.filter(TimeRestriction.is_enabled.is_(True))
            return query.order_by(TimeRestriction.start_minute, TimeRestriction.id).all()

    def get_restriction(self, restriction_id: int) -> TimeRestriction:
        with self._storage_errors("load time restriction"), self._session() as session:
            restriction = session.get(TimeRestriction, restriction_id)
        if restriction is None:
            raise NotFoundError(f"Time restriction {restriction_id} not found")
        return restriction

    def insert_restriction(self, restriction: TimeRestriction) -> int:
        with self._storage_errors("insert time restriction"), self._session() as session:
            session.add(restriction)
            session.flush()
            return restriction.id

    def update_restriction_enabled(self, restriction_id: int, enabled: bool, updated_at: datetime):
        with self._storage_errors("update time restriction"), self._session() as session:
            restriction = session.get(TimeRestriction, restriction_id)
            if restriction is None:
                raise NotFoundError(f"Time restriction {restriction_id} not found")
            restriction.is_enabled = enabled
            restriction.updated_at = updated_at

    def delete_restriction(self, restriction_id: int):
        with self._storage_errors("delete time restriction"), self._session() as session:
            restriction = session.get(TimeRestriction, restriction_id)
            if restriction is None:
                raise NotFoundError(f"Time restriction {restriction_id} not found")
            session.delete(restriction)

    def restriction_types(self) -> List[str]:
        with self._storage_errors("list restriction types"), self._session() as session:
            return [row[0] for row in session.query(TimeRestriction.restriction_type).distinct()]

    # === Progressive limits ===

    def insert_limit_with_milestones(
        self, limit: ProgressiveLimit, milestones: Sequence[ProgressiveMilestone]
    ) -> ProgressiveLimit:
        """Insert a limit and its milestones in one transaction."""
        conflict = partial(LimitAlreadyActiveError, limit.package_name)
        with self._storage_errors("insert progressive limit", conflict), self._session() as session:
            session.add(limit)
            session.flush()
            for milestone in milestones:
                milestone.limit_id = limit.id
                session.add(milestone)
            return limit

    def get_active_limit(self, package_name: str) -> Optional[ProgressiveLimit]:
        with self._storage_errors("load progressive limit"), self._session() as session:
            return session.query(ProgressiveLimit).filter_by(
                package_name=package_name, is_active=True
            ).first()

    def list_active_limits(self) -> List[ProgressiveLimit]:
        with self._storage_errors("list progressive limits"), self._session() as session:
            return session.query(ProgressiveLimit).filter_by(is_active=True).order_by(
                ProgressiveLimit.id
            ).all()

    def limits_due_for_reduction(self, today: date) -> List[ProgressiveLimit]:
        with self._storage_errors("list due progressive limits"), self._session() as session:
            return session.query(ProgressiveLimit).filter(and_(
                ProgressiveLimit.is_active.is_(True),
                ProgressiveLimit.next_reduction_date <= today,
            )).order_by(ProgressiveLimit.id).all()

    def save_reduction(
        self, limit: ProgressiveLimit, due_date: date, achieved_percentages: Sequence[int], today: date
    ) -> bool:
        """
        Persist a reduced limit and flip the milestones it crossed, atomically.

        The row is only written while it is still active and still due on
        `due_date`; returns False when it was cancelled or reduced meanwhile.
        """
        with self._storage_errors("save progressive limit"), self._session() as session:
            updated = session.query(ProgressiveLimit).filter(and_(
                ProgressiveLimit.id == limit.id,
                ProgressiveLimit.is_active.is_(True),
                ProgressiveLimit.next_reduction_date == due_date,
            )).update({
                ProgressiveLimit.current_limit_millis: limit.current_limit_millis,
                ProgressiveLimit.next_reduction_date: limit.next_reduction_date,
                ProgressiveLimit.progress_percentage: limit.progress_percentage,
                ProgressiveLimit.is_active: limit.is_active,
            }, synchronize_session=False)
            if not updated:
                return False
            if achieved_percentages:
                session.query(ProgressiveMilestone).filter(and_(
                    ProgressiveMilestone.limit_id == limit.id,
                    ProgressiveMilestone.percentage.in_(list(achieved_percentages)),
                    ProgressiveMilestone.is_achieved.is_(False),
                )).update(
                    {ProgressiveMilestone.is_achieved: True, ProgressiveMilestone.achieved_date: today},
                    synchronize_session=False,
                )
            return True

    def deactivate_limit(self, package_name: str) -> bool:
        with self._storage_errors("deactivate progressive limit"), self._session() as session:
            updated = session.query(ProgressiveLimit).filter_by(
                package_name=package_name, is_active=True
            ).update({ProgressiveLimit.is_active: False}, synchronize_session=False)
            return updated > 0

    def milestones_for_limit(self, limit_id: int) -> List[ProgressiveMilestone]:
        with self._storage_errors("list milestones"), self._session() as session:
            return session.query(ProgressiveMilestone).filter_by(limit_id=limit_id).order_by(
                ProgressiveMilestone.percentage
            ).all()

    def uncelebrated_milestones(self) -> List[ProgressiveMilestone]:
        with self._storage_errors("list uncelebrated milestones"), self._session() as session:
            return session.query(ProgressiveMilestone).filter_by(
                is_achieved=True, celebration_shown=False
            ).order_by(ProgressiveMilestone.limit_id, ProgressiveMilestone.percentage).all()

    def mark_celebration_shown(self, milestone_id: int):
        with self._storage_errors("update milestone"), self._session() as session:
            milestone = session.get(ProgressiveMilestone, milestone_id)
            if milestone is None:
                raise NotFoundError(f"Milestone {milestone_id} not found")
            milestone.celebration_shown = True

    # === Focus sessions ===

    def insert_focus_session(self, focus_session: FocusSession) -> int:
        with self._storage_errors("insert focus session", SessionAlreadyActiveError), \
                self._session() as session:
            session.add(focus_session)
            session.flush()
            return focus_session.id

    def get_open_focus_session(self) -> Optional[FocusSession]:
        with self._storage_errors("load open focus session"), self._session() as session:
            return session.query(FocusSession).filter(
                FocusSession.end_time.is_(None)
            ).order_by(FocusSession.start_time.desc()).first()

    def complete_focus_session(
        self, session_id: int, end_time: datetime, actual_duration_millis: int,
        was_successful: bool, interruption_count: int,
    ) -> FocusSession:
        with self._storage_errors("complete focus session"), self._session() as session:
            focus_session = session.get(FocusSession, session_id)
            if focus_session is None:
                raise NotFoundError(f"Focus session {session_id} not found")
            focus_session.end_time = end_time
            focus_session.actual_duration_millis = actual_duration_millis
            focus_session.was_successful = was_successful
            focus_session.interruption_count = interruption_count
            focus_session.is_open = False
            return focus_session

    def focus_sessions_between(self, start: datetime, end: datetime) -> List[FocusSession]:
        with self._storage_errors("list focus sessions"), self._session() as session:
            return session.query(FocusSession).filter(and_(
                FocusSession.start_time >= start,
                FocusSession.start_time < end,
            )).order_by(FocusSession.start_time).all()

    # === Usage (written by the usage tracker) ===

    def record_app_usage(self, package_name: str, start_time: datetime, end_time: datetime) -> int:
        duration = end_time - start_time
        record = AppUsage(
            package_name=package_name,
            start_time=start_time,
            end_time=end_time,
            duration_millis=int(duration.total_seconds() * 1000),
        )
        with self._storage_errors("record app usage"), self._session() as session:
            session.add(record)
            session.flush()
            return record.id

    def usage_between(self, package_name: str, start: datetime, end: datetime) -> int:
        with self._storage_errors("sum app usage"), self._session() as session:
            total = session.query(func.coalesce(func.sum(AppUsage.duration_millis), 0)).filter(and_(
                AppUsage.package_name == package_name,
                AppUsage.start_time >= start,
                AppUsage.start_time < end,
            )).scalar() or 0
            return int(total)

    def usage_for_day(self, package_name: str, day: date) -> int:
        start, end = day_bounds(day)
        return self.usage_between(package_name, start, end)

    def average_usage_last_7_days(self, package_name: str, today: date) -> int:
        """Mean daily usage over the seven days before today, in ms."""
        start, _ = day_bounds(today - timedelta(days=7))
        end, _ = day_bounds(today)
        return self.usage_between(package_name, start, end) // 7
