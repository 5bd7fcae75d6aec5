"""Database models for ScreenGuard."""
import json
from datetime import datetime
from typing import FrozenSet, Iterable

from sqlalchemy import (
    Boolean, Column, Date, DateTime, Float, ForeignKey, Index, Integer, String, Text,
    UniqueConstraint, create_engine, event, text,
)
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()

MILESTONE_PERCENTAGES = (25, 50, 75, 100)


def _dump_packages(packages: Iterable[str]) -> str:
    return json.dumps(sorted(set(packages)))


def _load_packages(raw) -> FrozenSet[str]:
    return frozenset(json.loads(raw)) if raw else frozenset()


def _dump_days(days: Iterable[int]) -> str:
    return ",".join(str(d) for d in sorted(set(days)))


def _load_days(raw) -> FrozenSet[int]:
    return frozenset(int(d) for d in raw.split(",") if d != "") if raw else frozenset()


class TimeRestriction(Base):
    """A named rule blocking some or all apps during a recurring window."""
    __tablename__ = 'time_restrictions'

    id = Column(Integer, primary_key=True)
    restriction_type = Column(String(50), nullable=False, default='custom')
    name = Column(String(255), nullable=False)
    description = Column(Text, default='')
    start_minute = Column(Integer, nullable=False)  # minutes from midnight
    end_minute = Column(Integer, nullable=False)
    apps_blocked = Column(Text, default='[]')  # JSON array; empty blocks everything
    days_of_week = Column(String(20), default='')  # "0,1,2" with 0=Sunday
    is_enabled = Column(Boolean, default=True)
    allow_emergency_apps = Column(Boolean, default=True)
    show_notifications = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now)

    def __init__(self, blocked_packages=(), active_days=(), **kwargs):
        kwargs.setdefault('restriction_type', 'custom')
        kwargs.setdefault('description', '')
        kwargs.setdefault('is_enabled', True)
        kwargs.setdefault('allow_emergency_apps', True)
        kwargs.setdefault('show_notifications', True)
        kwargs.setdefault('apps_blocked', _dump_packages(blocked_packages))
        kwargs.setdefault('days_of_week', _dump_days(active_days))
        super().__init__(**kwargs)

    @property
    def blocked_packages(self) -> FrozenSet[str]:
        return _load_packages(self.apps_blocked)

    @blocked_packages.setter
    def blocked_packages(self, packages: Iterable[str]):
        self.apps_blocked = _dump_packages(packages)

    @property
    def active_days(self) -> FrozenSet[int]:
        return _load_days(self.days_of_week)

    @active_days.setter
    def active_days(self, days: Iterable[int]):
        self.days_of_week = _dump_days(days)

    def __repr__(self):
        return f"<TimeRestriction(name={self.name}, window={self.start_minute}-{self.end_minute})>"


class ProgressiveLimit(Base):
    """Per-app usage ceiling that shrinks weekly toward a target."""
    __tablename__ = 'progressive_limits'
    __table_args__ = (
        Index(
            'uq_progressive_limits_active_package', 'package_name',
            unique=True,
            sqlite_where=text('is_active = 1'),
            postgresql_where=text('is_active'),
        ),
    )

    id = Column(Integer, primary_key=True)
    package_name = Column(String(255), nullable=False)
    original_limit_millis = Column(Integer, nullable=False)  # 7-day average + 10%
    target_limit_millis = Column(Integer, nullable=False)
    current_limit_millis = Column(Integer, nullable=False)
    reduction_percentage = Column(Integer, nullable=False, default=10)
    start_date = Column(Date, nullable=False)
    next_reduction_date = Column(Date, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    progress_percentage = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime, default=datetime.now)

    def __init__(self, **kwargs):
        kwargs.setdefault('reduction_percentage', 10)
        kwargs.setdefault('is_active', True)
        kwargs.setdefault('progress_percentage', 0.0)
        super().__init__(**kwargs)

    def __repr__(self):
        return (f"<ProgressiveLimit(package={self.package_name}, "
                f"current={self.current_limit_millis}ms, active={self.is_active})>")


class ProgressiveMilestone(Base):
    """One of the 25/50/75/100 percent checkpoints of a limit."""
    __tablename__ = 'progressive_milestones'
    __table_args__ = (UniqueConstraint('limit_id', 'percentage'),)

    id = Column(Integer, primary_key=True)
    limit_id = Column(Integer, ForeignKey('progressive_limits.id'), nullable=False)
    percentage = Column(Integer, nullable=False)
    reward_title = Column(String(255), default='')
    reward_description = Column(Text, default='')
    is_achieved = Column(Boolean, nullable=False, default=False)
    achieved_date = Column(Date)
    celebration_shown = Column(Boolean, nullable=False, default=False)

    def __init__(self, **kwargs):
        kwargs.setdefault('is_achieved', False)
        kwargs.setdefault('celebration_shown', False)
        super().__init__(**kwargs)

    def __repr__(self):
        return f"<ProgressiveMilestone(limit={self.limit_id}, {self.percentage}%, achieved={self.is_achieved})>"


class FocusSession(Base):
    """Store focus session data."""
    __tablename__ = 'focus_sessions'
    __table_args__ = (
        # at most one open session
        Index(
            'uq_focus_sessions_open', 'is_open',
            unique=True,
            sqlite_where=text('is_open = 1'),
            postgresql_where=text('is_open'),
        ),
    )

    id = Column(Integer, primary_key=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime)
    target_duration_millis = Column(Integer, nullable=False)
    actual_duration_millis = Column(Integer, nullable=False, default=0)
    was_successful = Column(Boolean, nullable=False, default=False)
    interruption_count = Column(Integer, nullable=False, default=0)
    apps_blocked = Column(Text, default='[]')  # JSON array
    is_open = Column(Boolean, nullable=False, default=True)

    def __init__(self, blocked_packages=(), **kwargs):
        kwargs.setdefault('actual_duration_millis', 0)
        kwargs.setdefault('was_successful', False)
        kwargs.setdefault('interruption_count', 0)
        kwargs.setdefault('is_open', kwargs.get('end_time') is None)
        kwargs.setdefault('apps_blocked', _dump_packages(blocked_packages))
        super().__init__(**kwargs)

    @property
    def blocked_packages(self) -> FrozenSet[str]:
        return _load_packages(self.apps_blocked)

    def __repr__(self):
        return f"<FocusSession(id={self.id}, target={self.target_duration_millis}ms, open={self.is_open})>"


class AppUsage(Base):
    """Foreground usage interval reported by the usage tracker."""
    __tablename__ = 'app_usage'

    id = Column(Integer, primary_key=True)
    package_name = Column(String(255), nullable=False, index=True)
    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime)
    duration_millis = Column(Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<AppUsage(package={self.package_name}, duration={self.duration_millis}ms)>"


def create_db_engine(db_url: str = "sqlite:///data/screenguard.db"):
    """Create an engine usable from several threads."""
    kwargs = {"echo": False}
    if db_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if db_url in ("sqlite://", "sqlite:///:memory:"):
            # one shared connection, or every session sees an empty database
            kwargs["poolclass"] = StaticPool
    engine = create_engine(db_url, **kwargs)

    if db_url.startswith("sqlite"):
        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def init_database(db_url: str = "sqlite:///data/screenguard.db"):
    """Initialize the database, create tables and return a session factory."""
    engine = create_db_engine(db_url)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)
