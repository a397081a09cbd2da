"""
app.py — The Fitness Tracker
Main Streamlit application with Google Sheets persistence, exercise
catalog, workout log, daily log and the guided workout player.
"""

import html
import json
import logging
from datetime import date

import gspread
import streamlit as st
from google.oauth2.service_account import Credentials

from fitness_logic import (
    Exercise, Workout, DailyLog, GuidedSession,
    EXERCISE_FIELDS, RECENT_WORKOUTS_LIMIT, RECENT_LOGS_LIMIT,
    exercise_payload, create_workout, load_workout_detail, fetch_today_log,
    fetch_sequence, log_stats, run_diagnostics, elapsed_minutes, utc_today,
)
from fitness_store import MemoryStore, NotFoundError, SheetStore, StoreError, TabularStore

logger = logging.getLogger(__name__)

# ─────────────────────────────────────────────
# Page Config
# ─────────────────────────────────────────────

st.set_page_config(
    page_title="Fitness Tracker",
    page_icon="🏋️",
    layout="wide",
    initial_sidebar_state="expanded",
)

# ─────────────────────────────────────────────
# Custom Styling
# ─────────────────────────────────────────────

st.markdown("""
<style>
    .stApp {
        background: linear-gradient(135deg, #f5f7fb 0%, #e6ecf5 100%);
    }

    /* Exercise card */
    .exercise-card {
        background: white;
        border-radius: 12px;
        padding: 1.2rem;
        margin-bottom: 0.8rem;
        box-shadow: 0 2px 8px rgba(0,0,0,0.06);
        border-left: 4px solid #4f6bed;
    }
    .exercise-card h4 { margin: 0 0 0.4rem 0; color: #1f2a44; }
    .exercise-card .meta { color: #6b7a90; font-size: 0.85rem; }

    /* Player */
    .reps-target {
        font-size: 1.6rem;
        font-weight: 700;
        text-align: center;
        background: #fff8e1;
        border-radius: 10px;
        padding: 0.8rem;
    }
    .step-current { color: #4f6bed; font-weight: 700; }

    .tracker-header {
        text-align: center;
        padding: 1rem 0 0.5rem 0;
    }
    .tracker-header h1 { color: #1f2a44; font-weight: 300; font-size: 2.2rem; }
    .tracker-header p { color: #6b7a90; font-style: italic; }
</style>
""", unsafe_allow_html=True)


# ─────────────────────────────────────────────
# Google Sheets Connection
# ─────────────────────────────────────────────

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive",
]
DEFAULT_SPREADSHEET_TITLE = "Fitness Tracker"


def get_secret(key: str, default=None):
    try:
        return st.secrets.get(key, default)
    except Exception as e:
        # no secrets.toml at all
        logger.info("Secrets unavailable (%s); using default for %s", e, key)
        return default


@st.cache_resource
def get_gspread_client():
    """Authenticate with Google using Streamlit secrets.

    Supports TWO formats:
    1. Simple: gcp_service_account_json = '{...entire JSON key...}'
    2. Traditional: [gcp_service_account] section with individual fields
    """
    try:
        raw = get_secret("gcp_service_account_json")
        if raw:
            creds_dict = json.loads(raw)
        elif get_secret("gcp_service_account"):
            creds_dict = dict(get_secret("gcp_service_account"))
        else:
            st.error("No Google credentials found in secrets. Add gcp_service_account_json or [gcp_service_account].")
            return None

        creds = Credentials.from_service_account_info(creds_dict, scopes=SCOPES)
        return gspread.authorize(creds)
    except json.JSONDecodeError as e:
        st.error(f"Invalid JSON in gcp_service_account_json: {e}")
        return None
    except Exception as e:
        logger.error("Google authorization failed: %s", e)
        st.error(f"Could not connect to Google Sheets: {e}")
        return None


def get_spreadsheet():
    """Open the spreadsheet named in secrets (URL, key, or default title)."""
    client = get_gspread_client()
    if client is None:
        return None
    try:
        sheet_url = get_secret("sheet_url", "")
        sheet_id = get_secret("sheet_id", "")
        if sheet_url:
            return client.open_by_url(sheet_url)
        elif sheet_id:
            return client.open_by_key(sheet_id)
        else:
            return client.open(DEFAULT_SPREADSHEET_TITLE)
    except Exception as e:
        logger.error("Could not open spreadsheet: %s", e)
        st.error(f"Could not open spreadsheet: {e}")
        return None


def open_store() -> TabularStore:
    """Sheets-backed store, or a session-only memory store as fallback."""
    if get_secret("store_backend", "sheets") == "memory":
        return MemoryStore()
    spreadsheet = get_spreadsheet()
    if spreadsheet is None:
        st.warning("Google Sheets not connected — data is kept for this session only.")
        return MemoryStore()
    store = SheetStore(spreadsheet)
    try:
        store.ensure_schema()
    except StoreError as e:
        st.error(f"Could not prepare worksheets: {e}")
    return store


# ─────────────────────────────────────────────
# Session State Initialization
# ─────────────────────────────────────────────

DEFAULTS = {
    "store": None,
    "view": "home",       # see VIEWS at the bottom
    "selected_workout_id": None,
    "session": None,
    "session_summary": None,
    "nw_rows": [],
    "nw_next_row": 0,
}
for key, val in DEFAULTS.items():
    if key not in st.session_state:
        st.session_state[key] = val

if st.session_state.store is None:
    st.session_state.store = open_store()


def get_store() -> TabularStore:
    return st.session_state.store


def view_state(name: str) -> dict:
    """Per-view error/notice/edit/delete/saving flags."""
    key = f"vs_{name}"
    if key not in st.session_state:
        st.session_state[key] = {
            "error": None,
            "notice": None,
            "editing_id": None,
            "confirm_delete_id": None,
            "show_form": False,
            "saving": False,
        }
    return st.session_state[key]


# ─────────────────────────────────────────────
# Navigation
# ─────────────────────────────────────────────

NAV = {
    "🏠 Home": "home",
    "▶️ Start Workout": "workout",
    "📅 Daily Log": "daily_log",
    "📋 Workout Plan": "plan",
    "🏋️ Exercises": "exercises",
    "➕ New Workout": "new_workout",
    "🩺 Test Connection": "test_db",
}
NAV_LABELS = {view: label for label, view in NAV.items()}


def go(view: str, **params):
    """Switch views. Only call from widget callbacks."""
    if view == "workout":
        st.session_state.session = None
    for key, value in params.items():
        st.session_state[key] = value
    st.session_state.view = view
    if view in NAV_LABELS:
        st.session_state.nav = NAV_LABELS[view]


def _on_nav():
    go(NAV[st.session_state.nav])


# ─────────────────────────────────────────────
# Shared View Helpers
# ─────────────────────────────────────────────

def fetch(loader, message: str = "Loading..."):
    """Run a read with a spinner. Shows the error and returns None on failure."""
    with st.spinner(message):
        try:
            return loader()
        except StoreError as e:
            st.error(f"Error: {e}")
            return None


def show_feedback(vs: dict):
    if vs["error"]:
        st.error(f"Error: {vs['error']}")
        vs["error"] = None
    if vs["notice"]:
        st.success(vs["notice"])
        vs["notice"] = None


def format_day(iso: str, with_weekday: bool = False) -> str:
    try:
        day = date.fromisoformat(str(iso)[:10])
    except ValueError:
        return str(iso)
    return day.strftime("%A, %d %B %Y" if with_weekday else "%d %B %Y")


def _arm_delete(vs: dict, record_id: str):
    vs["confirm_delete_id"] = record_id


def _disarm_delete(vs: dict):
    vs["confirm_delete_id"] = None


def _delete_record(vs: dict, table: str, record_id: str):
    vs["confirm_delete_id"] = None
    vs["error"] = None
    try:
        get_store().delete(table, {"id": record_id})
    except StoreError as e:
        vs["error"] = str(e)


def delete_controls(vs: dict, table: str, record_id: str, label: str, prefix: str):
    """Delete button that asks for confirmation before deleting."""
    if vs["confirm_delete_id"] == record_id:
        st.warning(f"Delete **{label}**?")
        st.button("Yes, delete", key=f"{prefix}_confirm_{record_id}", type="primary",
                  on_click=_delete_record, args=(vs, table, record_id))
        st.button("Cancel", key=f"{prefix}_cancel_{record_id}",
                  on_click=_disarm_delete, args=(vs,))
    else:
        st.button("🗑 Delete", key=f"{prefix}_delete_{record_id}",
                  on_click=_arm_delete, args=(vs, record_id))


# ─────────────────────────────────────────────
# Sidebar
# ─────────────────────────────────────────────

with st.sidebar:
    st.markdown("## 🏋️ Fitness Tracker")
    st.markdown("---")
    st.radio("Navigate", list(NAV), key="nav", on_change=_on_nav, label_visibility="collapsed")
    st.markdown("---")
    backend = "Google Sheets" if isinstance(get_store(), SheetStore) else "in-memory (not saved)"
    st.caption(f"Storage: **{backend}**")
    st.caption("Fitness Tracker v1.0")


# ─────────────────────────────────────────────
# Header
# ─────────────────────────────────────────────

st.markdown("""
<div class="tracker-header">
    <h1>Fitness Tracker</h1>
    <p>Log workouts, follow your plan, keep the streak going</p>
</div>
""", unsafe_allow_html=True)


# ─────────────────────────────────────────────
# View: Home
# ─────────────────────────────────────────────

def view_home(store: TabularStore):
    vs = view_state("home")

    cols = st.columns(5)
    for col, (label, target) in zip(cols, [
        ("▶️ Start Workout", "workout"),
        ("📅 Daily Log", "daily_log"),
        ("📋 Workout Plan", "plan"),
        ("➕ New Workout", "new_workout"),
        ("🏋️ Exercises", "exercises"),
    ]):
        col.button(label, key=f"home_go_{target}", use_container_width=True,
                   on_click=go, args=(target,))

    st.markdown("### Recent Workouts")
    rows = fetch(lambda: store.select(
        "workouts", order_by="date", ascending=False, limit=RECENT_WORKOUTS_LIMIT,
    ))
    show_feedback(vs)
    if rows is None:
        return
    if not rows:
        st.info("No workouts yet. Add your first one! ➕")
        return

    for workout in (Workout.from_record(r) for r in rows):
        with st.container():
            c1, c2, c3 = st.columns([6, 1, 1])
            with c1:
                notes = f"<div class='meta'>{html.escape(workout.notes)}</div>" if workout.notes else ""
                st.markdown(
                    f"""<div class="exercise-card">
                    <h4>{html.escape(workout.name)}</h4>
                    <div class="meta">📅 {format_day(workout.date)}</div>
                    {notes}
                    </div>""",
                    unsafe_allow_html=True,
                )
            with c2:
                st.button("👁 View", key=f"home_view_{workout.id}",
                          on_click=go, args=("workout_detail",),
                          kwargs={"selected_workout_id": workout.id})
            with c3:
                delete_controls(vs, "workouts", workout.id, workout.name, "home")


# ─────────────────────────────────────────────
# View: Workout Detail
# ─────────────────────────────────────────────

def view_workout_detail(store: TabularStore):
    st.button("← Back to Home", key="detail_back", on_click=go, args=("home",))
    workout_id = st.session_state.selected_workout_id

    with st.spinner("Loading workout..."):
        try:
            workout, items = load_workout_detail(store, workout_id)
        except NotFoundError:
            st.error("Workout not found.")
            return
        except StoreError as e:
            st.error(f"Error: {e}")
            return

    st.markdown(f"## {workout.name}")
    st.caption(f"📅 {format_day(workout.date, with_weekday=True)}")
    if workout.notes:
        st.markdown(f"*{workout.notes}*")

    st.markdown("### Exercises")
    if not items:
        st.info("No exercises recorded for this workout.")
        return

    for i, (item, exercise) in enumerate(items):
        name = exercise.name if exercise else "(deleted exercise)"
        st.markdown(f"**{i + 1}. {name}**")
        if exercise and exercise.muscle_group:
            st.caption(f"🎯 {exercise.muscle_group}")
        m1, m2, m3, m4 = st.columns(4)
        m1.metric("Sets", item.sets)
        m2.metric("Reps", item.reps if item.reps is not None else "—")
        m3.metric("Weight", f"{item.weight_kg:g} kg" if item.weight_kg is not None else "—")
        m4.metric("Duration", f"{item.duration_minutes} min" if item.duration_minutes is not None else "—")
        if item.notes:
            st.markdown(f"💬 {item.notes}")


# ─────────────────────────────────────────────
# View: New Workout
# ─────────────────────────────────────────────

ROW_FIELDS = ["exercise_id", "sets", "reps", "weight_kg", "duration_minutes", "notes"]


def _add_row():
    rid = st.session_state.nw_next_row
    st.session_state.nw_next_row += 1
    st.session_state.nw_rows = st.session_state.nw_rows + [rid]
    st.session_state[f"nw_{rid}_sets"] = "1"


def _remove_row(rid: int):
    st.session_state.nw_rows = [r for r in st.session_state.nw_rows if r != rid]


def _reset_new_workout():
    st.session_state.nw_name = ""
    st.session_state.nw_date = utc_today()
    st.session_state.nw_notes = ""
    st.session_state.nw_rows = []


def _save_new_workout(vs: dict):
    name = st.session_state.get("nw_name", "").strip()
    workout_date = st.session_state.get("nw_date") or utc_today()
    if not name:
        vs["error"] = "Workout name is required."
        return
    rows = [
        {f: st.session_state.get(f"nw_{rid}_{f}") for f in ROW_FIELDS}
        for rid in st.session_state.nw_rows
    ]
    vs["error"] = None
    vs["saving"] = True
    try:
        create_workout(get_store(), name, workout_date.isoformat(),
                       st.session_state.get("nw_notes"), rows)
    except StoreError as e:
        vs["error"] = str(e)
        return
    finally:
        vs["saving"] = False
    _reset_new_workout()
    view_state("home")["notice"] = f"Workout “{name}” saved! ✅"
    go("home")


def view_new_workout(store: TabularStore):
    vs = view_state("new_workout")
    st.markdown("### ➕ New Workout")

    exercises = fetch(lambda: [Exercise.from_record(r) for r in store.select("exercises", order_by="name")])
    show_feedback(vs)
    if exercises is None:
        return
    labels = {"": "Choose an exercise"}
    labels.update({ex.id: ex.label for ex in exercises})

    st.session_state.setdefault("nw_date", utc_today())
    st.text_input("Workout name *", key="nw_name", placeholder="e.g. Day 1 – Arms & Shoulders")
    st.date_input("Date *", key="nw_date")
    st.text_area("Notes", key="nw_notes", placeholder="Anything worth remembering about this workout...")

    st.markdown("#### Exercises")
    if not st.session_state.nw_rows:
        st.caption("No exercises added yet.")
    for n, rid in enumerate(st.session_state.nw_rows):
        with st.container():
            head, remove = st.columns([6, 1])
            head.markdown(f"**Exercise #{n + 1}**")
            remove.button("🗑 Remove", key=f"nw_{rid}_remove", on_click=_remove_row, args=(rid,))
            st.selectbox("Exercise *", list(labels), key=f"nw_{rid}_exercise_id",
                         format_func=lambda v: labels.get(v, v))
            c1, c2, c3, c4 = st.columns(4)
            c1.text_input("Sets", key=f"nw_{rid}_sets")
            c2.text_input("Reps", key=f"nw_{rid}_reps")
            c3.text_input("Weight (kg)", key=f"nw_{rid}_weight_kg")
            c4.text_input("Duration (min)", key=f"nw_{rid}_duration_minutes")
            st.text_input("Notes", key=f"nw_{rid}_notes")

    st.button("➕ Add Exercise", key="nw_add_row", on_click=_add_row)
    st.markdown("---")
    st.button("💾 Save Workout", key="nw_save", type="primary", disabled=vs["saving"],
              on_click=_save_new_workout, args=(vs,))


# ─────────────────────────────────────────────
# View: Exercise Forms (catalog + plan)
# ─────────────────────────────────────────────

CATALOG_FIELDS = ["name", "description", "muscle_group"]
FIELD_LABELS = {
    "name": "Name *",
    "muscle_group": "Muscle group",
    "reps_target": "Target (reps / duration)",
    "instructions": "Instructions",
    "video_url": "Video URL",
    "description": "Description",
}
LONG_FIELDS = {"instructions", "description"}


def _reset_exercise_form(vs: dict, prefix: str, keys: list[str]):
    for k in keys:
        st.session_state[f"{prefix}_{k}"] = ""
    vs["editing_id"] = None
    vs["show_form"] = False


def _open_exercise_form(vs: dict, prefix: str, keys: list[str], exercise: dict = None):
    for k in keys:
        st.session_state[f"{prefix}_{k}"] = (exercise or {}).get(k) or ""
    vs["editing_id"] = exercise["id"] if exercise else None
    vs["show_form"] = True
    vs["error"] = None


def _save_exercise(vs: dict, prefix: str, keys: list[str]):
    form = {k: st.session_state.get(f"{prefix}_{k}") for k in keys}
    payload = exercise_payload(form, keys)
    if not payload["name"]:
        vs["error"] = "Name is required."
        return
    vs["error"] = None
    vs["saving"] = True
    try:
        if vs["editing_id"]:
            get_store().update("exercises", payload, eq={"id": vs["editing_id"]})
        else:
            get_store().insert("exercises", payload)
    except StoreError as e:
        vs["error"] = str(e)
        return
    finally:
        vs["saving"] = False
    _reset_exercise_form(vs, prefix, keys)
    vs["notice"] = f"Saved “{payload['name']}”."


def exercise_form(vs: dict, prefix: str, keys: list[str]):
    title = "✏️ Edit Exercise" if vs["editing_id"] else "➕ New Exercise"
    st.markdown(f"#### {title}")
    for k in keys:
        widget = st.text_area if k in LONG_FIELDS else st.text_input
        widget(FIELD_LABELS[k], key=f"{prefix}_{k}")
    c1, c2 = st.columns(2)
    c1.button("💾 Save", key=f"{prefix}_save", type="primary", disabled=vs["saving"],
              on_click=_save_exercise, args=(vs, prefix, keys))
    c2.button("✖ Cancel", key=f"{prefix}_cancel_form",
              on_click=_reset_exercise_form, args=(vs, prefix, keys))


# ─────────────────────────────────────────────
# View: Exercises (catalog)
# ─────────────────────────────────────────────

def view_exercises(store: TabularStore):
    vs = view_state("exercises")
    st.markdown("### 🏋️ Manage Exercises")

    rows = fetch(lambda: store.select("exercises", order_by="name"))
    show_feedback(vs)

    if vs["show_form"]:
        exercise_form(vs, "ex", CATALOG_FIELDS)
    else:
        st.button("➕ Add Exercise", key="ex_add", on_click=_open_exercise_form,
                  args=(vs, "ex", CATALOG_FIELDS))

    if rows is None:
        return
    st.markdown(f"**{len(rows)} exercises**")
    if not rows:
        st.info("No exercises yet. Add your first one above.")
        return

    for row in rows:
        ex = Exercise.from_record(row)
        c1, c2, c3 = st.columns([6, 1, 1])
        with c1:
            group = f"<div class='meta'>🎯 {html.escape(ex.muscle_group)}</div>" if ex.muscle_group else ""
            desc = f"<div class='meta'>{html.escape(ex.description)}</div>" if ex.description else ""
            st.markdown(
                f"""<div class="exercise-card"><h4>{html.escape(ex.name)}</h4>{group}{desc}</div>""",
                unsafe_allow_html=True,
            )
        with c2:
            st.button("✏️ Edit", key=f"ex_edit_{ex.id}", on_click=_open_exercise_form,
                      args=(vs, "ex", CATALOG_FIELDS, row))
        with c3:
            delete_controls(vs, "exercises", ex.id, ex.name, "ex")


# ─────────────────────────────────────────────
# View: Workout Plan
# ─────────────────────────────────────────────

def view_plan(store: TabularStore):
    vs = view_state("plan")
    st.markdown("### 📋 Workout Plan")

    rows = fetch(lambda: store.select("exercises", order_by="created_at"))
    show_feedback(vs)

    top1, top2 = st.columns(2)
    top1.button("▶️ Start Workout", key="plan_start", type="primary", use_container_width=True,
                on_click=go, args=("workout",))
    if not vs["show_form"]:
        top2.button("➕ Add Exercise", key="plan_add", use_container_width=True,
                    on_click=_open_exercise_form, args=(vs, "plan", EXERCISE_FIELDS))
    if vs["show_form"]:
        exercise_form(vs, "plan", EXERCISE_FIELDS)

    if rows is None:
        return
    if not rows:
        st.info("Your plan is empty. Add the exercises you want to do.")
        return

    for i, row in enumerate(rows):
        ex = Exercise.from_record(row)
        with st.container():
            c1, c2, c3 = st.columns([6, 1, 1])
            with c1:
                meta = " · ".join(v for v in (ex.muscle_group, ex.reps_target) if v)
                st.markdown(
                    f"""<div class="exercise-card">
                    <h4>{i + 1}. {html.escape(ex.name)}</h4>
                    <div class="meta">{html.escape(meta)}</div>
                    </div>""",
                    unsafe_allow_html=True,
                )
                if ex.instructions:
                    with st.expander("Instructions"):
                        st.markdown(ex.instructions)
                if ex.video_url:
                    st.markdown(f"[▶ Watch video]({ex.video_url})")
            with c2:
                st.button("✏️ Edit", key=f"plan_edit_{ex.id}", on_click=_open_exercise_form,
                          args=(vs, "plan", EXERCISE_FIELDS, row))
            with c3:
                delete_controls(vs, "exercises", ex.id, ex.name, "plan")


# ─────────────────────────────────────────────
# View: Daily Log
# ─────────────────────────────────────────────

def _save_daily_log(vs: dict):
    picked = st.session_state.get("log_date") or utc_today()
    notes = (st.session_state.get("log_notes") or "").strip()
    vs["error"] = None
    vs["saving"] = True
    try:
        get_store().upsert("daily_logs", {
            "date": picked.isoformat(),
            "completed": True,
            "notes": notes or None,
        }, on_conflict="date")
    except StoreError as e:
        vs["error"] = str(e)
        return
    finally:
        vs["saving"] = False
    st.session_state.log_notes = ""
    st.session_state.log_date = utc_today()
    vs["notice"] = "Saved! 🎉"


def view_daily_log(store: TabularStore):
    vs = view_state("daily_log")
    st.markdown("### 📅 Daily Log")
    st.caption("Mark the days you finished your workout.")

    rows = fetch(lambda: store.select(
        "daily_logs", order_by="date", ascending=False, limit=RECENT_LOGS_LIMIT,
    ))
    show_feedback(vs)
    logs = [DailyLog.from_record(r) for r in rows or []]
    done_days = {log.date for log in logs if log.completed}

    today = utc_today()
    st.session_state.setdefault("log_date", today)
    picked = st.date_input("Date *", key="log_date", max_value=today)
    if picked and picked.isoformat() in done_days:
        st.caption("✅ Already logged for this date — saving again replaces it.")
    st.text_area("Notes (optional)", key="log_notes",
                 placeholder="e.g. Felt great, finished every exercise...")
    st.button("✅ Log Workout Done", key="log_save", type="primary", disabled=vs["saving"],
              on_click=_save_daily_log, args=(vs,))

    if rows is None:
        return

    st.markdown("---")
    stats = log_stats(logs, today)
    s1, s2, s3 = st.columns(3)
    s1.metric("Total Days", stats["total"])
    s2.metric("Last 7 Days", stats["week"])
    s3.metric("This Month", stats["month"])

    st.markdown("#### History")
    if not logs:
        st.info("No logs yet. Record your first workout day! 💪")
        return
    for log in logs:
        c1, c2 = st.columns([6, 1])
        with c1:
            mark = "✅" if log.completed else "⬜"
            st.markdown(f"{mark} **{format_day(log.date, with_weekday=True)}**")
            if log.notes:
                st.caption(log.notes)
        with c2:
            delete_controls(vs, "daily_logs", log.id, format_day(log.date), "log")


# ─────────────────────────────────────────────
# View: Guided Workout (player)
# ─────────────────────────────────────────────

def _session_step(vs: dict, action: str):
    session: GuidedSession = st.session_state.session
    vs["error"] = None
    if action == "back":
        session.retreat()
        return
    vs["saving"] = True
    try:
        step = session.skip if action == "skip" else session.advance
        summary = step(get_store())
    except StoreError as e:
        vs["error"] = str(e)
        return
    finally:
        vs["saving"] = False
    if summary is not None:
        st.session_state.session_summary = summary
        go("complete")


def _quit_session():
    st.session_state.session = None
    go("home")


def view_workout(store: TabularStore):
    vs = view_state("workout")

    if st.session_state.session is None:
        sequence = fetch(lambda: fetch_sequence(store), "Loading exercises...")
        if sequence is None:
            st.button("← Back to Home", key="player_home", on_click=go, args=("home",))
            return
        if not sequence:
            st.info("No exercises yet. Add some to your Workout Plan first.")
            st.button("📋 Go to Workout Plan", key="player_to_plan", type="primary",
                      on_click=go, args=("plan",))
            return
        vs["error"] = None
        st.session_state.session = GuidedSession(sequence)

    session: GuidedSession = st.session_state.session
    ex = session.current
    idx = session.position

    st.progress(session.progress, text=f"Exercise {idx + 1} of {session.total}")
    minutes = elapsed_minutes(session.start_time, session.clock())
    st.caption(f"⏱ {minutes} min elapsed")
    show_feedback(vs)

    main_col, list_col = st.columns([3, 2])

    with main_col:
        badge = "✅ " if session.is_completed(ex) else ""
        st.markdown(f"## {badge}{ex.name}")
        if ex.muscle_group:
            st.markdown(f"🎯 **{ex.muscle_group}**")
        if ex.reps_target:
            st.markdown(f'<div class="reps-target">{html.escape(ex.reps_target)}</div>', unsafe_allow_html=True)
        if ex.instructions:
            st.markdown("#### How to do it")
            st.markdown(ex.instructions)
        if ex.video_url:
            st.markdown(f"[▶ Watch video]({ex.video_url})")
        if session.is_completed(ex):
            st.success("Done!")

        st.markdown("---")
        b1, b2, b3 = st.columns(3)
        b1.button("← Prev", key="player_prev", disabled=session.is_first,
                  on_click=_session_step, args=(vs, "back"))
        if session.is_last:
            b2.button("✅ Finish – Save Daily Log", key="player_finish", type="primary",
                      disabled=vs["saving"], on_click=_session_step, args=(vs, "next"))
        else:
            label = "Next →" if session.is_completed(ex) else "✅ Done – Next"
            b2.button(label, key="player_next", type="primary",
                      on_click=_session_step, args=(vs, "next"))
            b3.button("Skip ⏭", key="player_skip", on_click=_session_step, args=(vs, "skip"))

    with list_col:
        st.markdown("#### All Exercises")
        for i, item in enumerate(session.sequence):
            mark = "✅" if session.is_completed(item) else ("👉" if i == idx else "▫️")
            text = f"{i + 1}. {html.escape(item.name)}"
            if i == idx:
                text = f'<span class="step-current">{text}</span>'
            st.markdown(f"{mark} {text}", unsafe_allow_html=True)

    st.button("✖ Quit Session", key="player_quit", on_click=_quit_session)


# ─────────────────────────────────────────────
# View: Session Complete
# ─────────────────────────────────────────────

def view_complete(store: TabularStore):
    st.markdown("## 🎉 Workout Complete!")
    st.balloons()

    summary = st.session_state.session_summary
    if summary:
        st.markdown(
            f"You finished **{summary.completed_count}/{summary.total} exercises** "
            f"in **{summary.minutes} min**. Amazing work!"
        )

    try:
        log = fetch_today_log(store)
    except StoreError as e:
        logger.error("Could not load today's log: %s", e)
        log = None
    if log:
        st.markdown(f"📅 Logged for **{format_day(log.date, with_weekday=True)}**")
        if log.notes:
            st.caption(log.notes)

    c1, c2, c3 = st.columns(3)
    c1.button("🔁 Start Another Session", key="complete_again", on_click=go, args=("workout",))
    c2.button("📅 Daily Log", key="complete_log", on_click=go, args=("daily_log",))
    c3.button("🏠 Home", key="complete_home", on_click=go, args=("home",))


# ─────────────────────────────────────────────
# View: Test Connection
# ─────────────────────────────────────────────

CHECK_LABELS = [
    ("connection", "1. Store connection"),
    ("exercises", "2. exercises"),
    ("workouts", "3. workouts"),
    ("workout_exercises", "4. workout_exercises"),
    ("daily_logs", "5. daily_logs"),
]


def view_test_db(store: TabularStore):
    st.markdown("### 🩺 Test Connection")
    with st.spinner("Testing the connection..."):
        results = run_diagnostics(store)

    for key, title in CHECK_LABELS:
        result = results[key]
        st.markdown(f"#### {title}")
        if result["success"]:
            extra = f" · {result['count']} row(s) read" if "count" in result else ""
            st.success(f"OK{extra}")
        else:
            st.error(f"Failed: {result['error']}")

    st.markdown("#### 6. exercises fields")
    fields = results["exercises_fields"]
    if fields["success"]:
        for name in ("reps_target", "instructions", "video_url"):
            ok = fields[f"has_{name}"]
            st.markdown(f"{'✅' if ok else '❌'} `{name}`")
    else:
        st.error(f"Failed: {fields['error']}")

    st.button("🔄 Run Again", key="test_db_rerun")


# ─────────────────────────────────────────────
# Dispatch
# ─────────────────────────────────────────────

VIEWS = {
    "home": view_home,
    "workout_detail": view_workout_detail,
    "new_workout": view_new_workout,
    "exercises": view_exercises,
    "plan": view_plan,
    "daily_log": view_daily_log,
    "workout": view_workout,
    "complete": view_complete,
    "test_db": view_test_db,
}

VIEWS.get(st.session_state.view, view_home)(get_store())
