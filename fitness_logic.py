"""
fitness_logic.py — The Fitness Tracker Brain
Entity models, the guided-session stepper, daily-log stats and the
store helpers shared by the views.
"""

import logging
from dataclasses import dataclass, field, asdict, fields
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional

import pandas as pd

from fitness_store import NotFoundError, StoreError, TabularStore

logger = logging.getLogger(__name__)

# ─────────────────────────────────────────────
# Constants
# ─────────────────────────────────────────────

MAX_SESSION_EXERCISES = 20
# The "water break / deep breathing" card kept in the catalog; never a session step.
REST_PLACEHOLDER_NAME = "พักดื่มน้ำ / หายใจลึกๆ"
RECENT_WORKOUTS_LIMIT = 10
RECENT_LOGS_LIMIT = 30
PROBE_FIELDS = ["id", "name", "reps_target", "instructions", "video_url"]


# ─────────────────────────────────────────────
# Parsing Helpers
# ─────────────────────────────────────────────

def parse_int(value, default: Optional[int] = None) -> Optional[int]:
    """Form text -> int, or `default` when blank or unparsable."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    try:
        return int(float(str(value).strip()))
    except ValueError:
        return default


def parse_float(value, default: Optional[float] = None) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return default
    try:
        return float(str(value).strip())
    except ValueError:
        return default


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def utc_today() -> date:
    """Calendar date used for daily logs (UTC, as the hosted store stamps it)."""
    return _utcnow().date()


def blank_to_none(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


# ─────────────────────────────────────────────
# Data Models
# ─────────────────────────────────────────────

class Record:
    """Mixin for building dataclasses from store rows."""

    @classmethod
    def from_record(cls, record: dict):
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in record.items() if k in names})

    def to_dict(self):
        return asdict(self)


@dataclass
class Exercise(Record):
    id: str
    name: str
    muscle_group: Optional[str] = None
    reps_target: Optional[str] = None      # free text, e.g. "3 x 12" or "30 sec"
    instructions: Optional[str] = None
    video_url: Optional[str] = None
    description: Optional[str] = None
    created_at: Optional[str] = None

    @property
    def label(self) -> str:
        return f"{self.name} ({self.muscle_group})" if self.muscle_group else self.name


@dataclass
class Workout(Record):
    id: str
    name: str
    date: str
    notes: Optional[str] = None
    created_at: Optional[str] = None


@dataclass
class WorkoutExercise(Record):
    id: str
    workout_id: str
    exercise_id: str
    sets: int = 1
    reps: Optional[int] = None
    weight_kg: Optional[float] = None
    duration_minutes: Optional[int] = None
    notes: Optional[str] = None
    created_at: Optional[str] = None

    def __post_init__(self):
        self.sets = parse_int(self.sets, default=1)
        self.reps = parse_int(self.reps)
        self.weight_kg = parse_float(self.weight_kg)
        self.duration_minutes = parse_int(self.duration_minutes)


@dataclass
class DailyLog(Record):
    id: str
    date: str
    completed: bool = False
    notes: Optional[str] = None
    created_at: Optional[str] = None


# ─────────────────────────────────────────────
# Form Payloads
# ─────────────────────────────────────────────

EXERCISE_FIELDS = ["name", "muscle_group", "reps_target", "instructions", "video_url", "description"]


def exercise_payload(form: dict, keys: list[str] = EXERCISE_FIELDS) -> dict:
    """Optional text fields go to None when left blank."""
    payload = {}
    for key in keys:
        if key == "name":
            payload[key] = str(form.get(key) or "").strip()
        else:
            payload[key] = blank_to_none(form.get(key))
    return payload


def workout_exercise_payload(workout_id: str, row: dict) -> dict:
    return {
        "workout_id": workout_id,
        "exercise_id": row["exercise_id"],
        "sets": parse_int(row.get("sets"), default=1),
        "reps": parse_int(row.get("reps")),
        "weight_kg": parse_float(row.get("weight_kg")),
        "duration_minutes": parse_int(row.get("duration_minutes")),
        "notes": blank_to_none(row.get("notes")),
    }


# ─────────────────────────────────────────────
# Store Helpers
# ─────────────────────────────────────────────

def create_workout(store: TabularStore, name: str, workout_date: str,
                   notes: Optional[str], rows: list[dict]) -> Workout:
    """
    Insert the workout, then every row that has an exercise chosen, as one batch.
    Rows without an exercise are dropped.
    """
    record = store.insert("workouts", {
        "name": name.strip(),
        "date": workout_date,
        "notes": blank_to_none(notes),
    })
    workout = Workout.from_record(record)
    items = [workout_exercise_payload(workout.id, r) for r in rows if r.get("exercise_id")]
    if items:
        store.insert("workout_exercises", items)
    logger.info("Created workout %s with %d exercise(s)", workout.id, len(items))
    return workout


def load_workout_detail(store: TabularStore, workout_id: str
                        ) -> tuple[Workout, list[tuple[WorkoutExercise, Optional[Exercise]]]]:
    """Raises NotFoundError when the workout does not exist."""
    workout = Workout.from_record(store.select("workouts", eq={"id": workout_id}, single=True))
    items = [
        WorkoutExercise.from_record(r)
        for r in store.select("workout_exercises", eq={"workout_id": workout_id}, order_by="created_at")
    ]
    catalog = {r["id"]: Exercise.from_record(r) for r in store.select("exercises")}
    return workout, [(item, catalog.get(item.exercise_id)) for item in items]


def fetch_today_log(store: TabularStore, today: Optional[date] = None) -> Optional[DailyLog]:
    """Today's log or None. A missing row is not an error here."""
    today = today or utc_today()
    try:
        return DailyLog.from_record(
            store.select("daily_logs", eq={"date": today.isoformat()}, single=True)
        )
    except NotFoundError:
        return None


def log_stats(logs: list[DailyLog], today: Optional[date] = None) -> dict:
    """Count totals: all logs, logs in the last 7 days (today included), logs this month."""
    today = today or utc_today()
    if not logs:
        return {"total": 0, "week": 0, "month": 0}
    df = pd.DataFrame([log.to_dict() for log in logs])
    dates = pd.to_datetime(df["date"], errors="coerce")
    week_start = pd.Timestamp(today - timedelta(days=6))
    month_start = pd.Timestamp(today.replace(day=1))
    return {
        "total": len(df),
        "week": int((dates >= week_start).sum()),
        "month": int((dates >= month_start).sum()),
    }


def run_diagnostics(store: TabularStore) -> dict:
    """
    One read per collection plus a connection and a field-presence probe.
    Purely informational: never writes.
    """
    results = {}

    try:
        store.select("exercises", columns=["id"], limit=1)
        results["connection"] = {"success": True}
    except StoreError as e:
        results["connection"] = {"success": False, "error": str(e)}

    for table in ("exercises", "workouts", "workout_exercises", "daily_logs"):
        try:
            rows = store.select(table, limit=1)
            results[table] = {"success": True, "exists": True, "count": len(rows)}
        except StoreError as e:
            results[table] = {"success": False, "exists": False, "error": str(e)}

    try:
        rows = store.select("exercises", columns=PROBE_FIELDS, limit=1)
        first = rows[0] if rows else {}
        results["exercises_fields"] = {
            "success": True,
            **{f"has_{name}": name in first for name in PROBE_FIELDS[2:]},
        }
    except StoreError as e:
        results["exercises_fields"] = {"success": False, "error": str(e)}

    return results


# ─────────────────────────────────────────────
# Guided Session Stepper
# ─────────────────────────────────────────────

def build_sequence(exercises: list[Exercise], limit: int = MAX_SESSION_EXERCISES) -> list[Exercise]:
    """Cap the fetched list, then drop the rest placeholder."""
    return [ex for ex in exercises[:limit] if ex.name != REST_PLACEHOLDER_NAME]


def fetch_sequence(store: TabularStore, limit: int = MAX_SESSION_EXERCISES) -> list[Exercise]:
    rows = store.select("exercises", order_by="created_at", limit=limit)
    return build_sequence([Exercise.from_record(r) for r in rows], limit)


def elapsed_minutes(start: datetime, end: datetime) -> int:
    """Whole minutes, rounding half up. Never negative."""
    ms = max((end - start).total_seconds() * 1000, 0)
    return int(ms / 60000 + 0.5)


@dataclass
class SessionSummary:
    date: str
    completed_count: int
    total: int
    minutes: int
    notes: str


@dataclass
class GuidedSession:
    """
    Steps through `sequence` one exercise at a time.

    `completed` only grows. Reaching past the last exercise finishes the
    session, which writes one daily log for today.
    """
    sequence: list[Exercise]
    clock: Callable[[], datetime] = _utcnow
    position: int = 0
    completed: set = field(default_factory=set)
    start_time: Optional[datetime] = None
    finished: bool = False

    def __post_init__(self):
        if not self.sequence:
            raise ValueError("Cannot start a session without exercises")
        if self.start_time is None:
            self.start_time = self.clock()
        logger.info("Session started with %d exercise(s)", len(self.sequence))

    @property
    def current(self) -> Exercise:
        return self.sequence[self.position]

    @property
    def total(self) -> int:
        return len(self.sequence)

    @property
    def is_first(self) -> bool:
        return self.position == 0

    @property
    def is_last(self) -> bool:
        return self.position == self.total - 1

    @property
    def progress(self) -> float:
        return (self.position + 1) / self.total

    def is_completed(self, exercise: Exercise) -> bool:
        return exercise.id in self.completed

    def advance(self, store: TabularStore) -> Optional[SessionSummary]:
        """Mark the current exercise done and move on; finish after the last one."""
        self.completed.add(self.current.id)
        if not self.is_last:
            self.position += 1
            return None
        return self.finish(store)

    # Skipping still marks the exercise as done.
    skip = advance

    def retreat(self) -> None:
        if self.position > 0:
            self.position -= 1

    def summarize(self) -> SessionSummary:
        now = self.clock()
        minutes = elapsed_minutes(self.start_time, now)
        # the final exercise counts even when finish is pressed before it is marked
        done = len(self.completed | {self.current.id})
        notes = f"Completed {done}/{self.total} exercises in {minutes} min"
        return SessionSummary(now.date().isoformat(), done, self.total, minutes, notes)

    def finish(self, store: TabularStore) -> SessionSummary:
        """
        Upsert today's daily log. On StoreError nothing changes,
        so the user can retry from the same position.
        """
        summary = self.summarize()
        store.upsert("daily_logs", {
            "date": summary.date,
            "completed": True,
            "notes": summary.notes,
        }, on_conflict="date")
        self.finished = True
        logger.info("Session finished: %s", summary.notes)
        return summary
