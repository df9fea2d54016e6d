"""
Consumption store: the single owner of the Foodie database file.

Every operation maps to one fixed SQL template run through src.db.statements.
Persistence failures degrade to "no data": reads come back empty, writes
report False, and nothing is raised to the caller.
"""
import logging
import threading
from contextlib import contextmanager
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Callable, Iterator
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from src.db import statements
from src.db.database import create_db_engine, get_db_path, init_db, open_connection
from src.db.statements import Binder, RowCursor
from src.models.consumption import DEFAULT_SETTINGS, ConsumptionEvent, MealCategory

logger = logging.getLogger("foodie.store")

SQL_SEED_SETTING = "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?);"
SQL_SET_SETTING = "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?);"
SQL_GET_SETTING = "SELECT value FROM settings WHERE key = ?;"

SQL_SAVE_EVENT = """
INSERT OR REPLACE INTO consumption (id, category, calories, timestamp, water_amount)
VALUES (?, ?, ?, ?, ?);
"""
SQL_ALL_EVENTS = """
SELECT id, category, calories, timestamp, water_amount
FROM consumption
ORDER BY timestamp DESC;
"""
SQL_DAY_EVENTS = """
SELECT id, category, calories, timestamp, water_amount
FROM consumption
WHERE timestamp >= ? AND timestamp < ?
ORDER BY timestamp DESC;
"""
SQL_DELETE_EVENT = "DELETE FROM consumption WHERE id IN (?, ?);"
SQL_DELETE_ID_VARIANT = "DELETE FROM consumption WHERE id = ?;"
SQL_CLEAR_DAY = "DELETE FROM consumption WHERE timestamp >= ? AND timestamp < ?;"
SQL_COUNT_EVENTS = "SELECT COUNT(*) FROM consumption;"


def calendar_day(day: date | datetime, tz: tzinfo | None = None) -> date:
    """The calendar date `day` falls on in `tz`; aware datetimes are converted first."""
    if isinstance(day, datetime):
        if day.tzinfo is not None:
            day = day.astimezone(tz)
        return day.date()
    return day


def day_bounds(day: date | datetime, tz: tzinfo | None = None) -> tuple[float, float]:
    """
    Half-open [start, end) epoch-second range covering one calendar day.

    `tz=None` uses the system's local calendar. The range is computed from
    two local midnights, so it spans 23 or 25 hours on DST transition days.
    """
    day = calendar_day(day, tz)
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start.timestamp(), end.timestamp()


def _decode_event(row: RowCursor) -> ConsumptionEvent:
    return ConsumptionEvent(
        id=UUID(row.string(0)),
        category=MealCategory(row.string(1)),
        calories=row.integer(2),
        timestamp=datetime.fromtimestamp(row.real(3), tz=timezone.utc),
        water_amount=row.optional_real(4),
    )


class ConsumptionStore:
    """
    Owns one long-lived connection to the database file.

    Construct one per process and pass it to whatever needs persistence.
    `on_change`, when given, is called after every successful write so the
    caller can refresh anything derived from stored data.
    """

    def __init__(
        self,
        path: str | None = None,
        tz: tzinfo | None = None,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self.path = path or get_db_path()
        self.tz = tz
        self.on_change = on_change
        self.last_skipped_rows = 0
        self._lock = threading.RLock()
        self._engine = None
        self._conn = None
        self._open()

    # ── Lifecycle ────────────────────────────────────────────────────────────

    def _open(self) -> None:
        try:
            self._engine = create_db_engine(self.path)
            self._conn = open_connection(self._engine)
        except SQLAlchemyError as e:
            logger.error("Error opening database at %s: %s", self.path, getattr(e, "orig", e))
            if self._engine is not None:
                self._engine.dispose()
            self._engine = None
            self._conn = None
            return

        if self._create_tables():
            self._seed_default_settings()

    def _create_tables(self) -> bool:
        try:
            init_db(self._conn)
        except SQLAlchemyError as e:
            logger.error("Error creating tables: %s", getattr(e, "orig", e))
            return False
        logger.info("Database tables ready at %s", self.path)
        return True

    def _seed_default_settings(self) -> None:
        for key, value in DEFAULT_SETTINGS.items():
            statements.execute(self._conn, SQL_SEED_SETTING, _bind_strings(key, value))

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
            if self._engine is not None:
                self._engine.dispose()
                self._engine = None

    def __enter__(self) -> "ConsumptionStore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _notify(self, ok: bool) -> bool:
        if ok and self.on_change is not None:
            self.on_change()
        return ok

    # ── Settings ─────────────────────────────────────────────────────────────

    def get_setting(self, key: str) -> str | None:
        result: list[str] = []
        with self._lock:
            statements.query(
                self._conn,
                SQL_GET_SETTING,
                lambda b: b.bind_string(1, key),
                lambda row: result.append(row.string(0)),
            )
        return result[0] if result else None

    def set_setting(self, key: str, value: str) -> bool:
        with self._lock:
            ok = statements.execute(self._conn, SQL_SET_SETTING, _bind_strings(key, value))
        return self._notify(ok)

    # ── Consumption events ───────────────────────────────────────────────────

    def save_consumption_event(self, event: ConsumptionEvent) -> bool:
        stored_id, variant = _id_forms(event.id)

        def bind(b: Binder) -> None:
            b.bind_string(1, stored_id)
            b.bind_string(2, event.category.value)
            b.bind_int(3, event.calories)
            b.bind_real(4, event.epoch_seconds)
            b.bind_optional_real(5, event.water_amount)

        with self._lock:
            ok = statements.execute(self._conn, SQL_SAVE_EVENT, bind)
            if ok and variant != stored_id:
                # A row saved under the lower-case form is the same event.
                statements.execute(
                    self._conn, SQL_DELETE_ID_VARIANT, lambda b: b.bind_string(1, variant)
                )
        return self._notify(ok)

    def get_all_consumption_events(self) -> list[ConsumptionEvent]:
        """All events, newest first."""
        return self._read_events(SQL_ALL_EVENTS)

    def get_consumption_events(self, day: date | datetime) -> list[ConsumptionEvent]:
        """Events logged on one calendar day of the store's timezone, newest first."""
        return self._read_events(SQL_DAY_EVENTS, self._bind_day(day))

    def delete_consumption_event(self, event_id: UUID | str) -> bool:
        with self._lock:
            ok = statements.execute(self._conn, SQL_DELETE_EVENT, _bind_strings(*_id_forms(event_id)))
        return self._notify(ok)

    def clear_consumption_events(self, day: date | datetime) -> bool:
        with self._lock:
            ok = statements.execute(self._conn, SQL_CLEAR_DAY, self._bind_day(day))
        return self._notify(ok)

    def get_event_count(self) -> int:
        counts: list[int] = []
        with self._lock:
            statements.query(
                self._conn, SQL_COUNT_EVENTS, row_handler=lambda row: counts.append(row.integer(0))
            )
        return counts[0] if counts else 0

    # ── Maintenance ──────────────────────────────────────────────────────────

    def compact(self) -> bool:
        """Reclaim free pages and defragment the file (VACUUM)."""
        with self._lock:
            return statements.execute(self._conn, "VACUUM;")

    # ── Helpers ──────────────────────────────────────────────────────────────

    def _bind_day(self, day: date | datetime) -> statements.BindFn:
        start, end = day_bounds(day, self.tz)

        def bind(b: Binder) -> None:
            b.bind_real(1, start)
            b.bind_real(2, end)

        return bind

    def _read_events(self, sql: str, bind: statements.BindFn | None = None) -> list[ConsumptionEvent]:
        events: list[ConsumptionEvent] = []
        skipped = 0

        def handle(row: RowCursor) -> None:
            nonlocal skipped
            try:
                events.append(_decode_event(row))
            except (ValueError, TypeError, OverflowError, OSError) as e:
                skipped += 1
                logger.warning("Skipping undecodable consumption row %r: %s", row.optional_string(0), e)

        with self._lock:
            statements.query(self._conn, sql, bind, handle)
            self.last_skipped_rows = skipped
        return events


def _id_forms(event_id: UUID | str) -> tuple[str, str]:
    """
    (stored, variant) text forms of an id. Ids are stored upper-case, the
    form the database file has always used; `variant` is the lower-case
    str(UUID) form. Text that is not a UUID is used verbatim for both.
    """
    if not isinstance(event_id, UUID):
        try:
            event_id = UUID(event_id)
        except ValueError:
            return event_id, event_id
    return str(event_id).upper(), str(event_id)


def _bind_strings(*values: str) -> statements.BindFn:
    def bind(b: Binder) -> None:
        for index, value in enumerate(values, start=1):
            b.bind_string(index, value)

    return bind


@contextmanager
def open_store(path: str | None = None, **kwargs) -> Iterator[ConsumptionStore]:
    store = ConsumptionStore(path, **kwargs)
    try:
        yield store
    finally:
        store.close()
