"""
Statement execution helpers: raw SQL in, booleans and typed columns out.

Every call prepares one statement on an open Connection, binds positional
(`?`) parameters, steps it, and closes the driver result before returning,
whether the statement completed, matched nothing, or failed. Failures are
logged and reported as False; they are never raised to the caller.
"""
import logging
from typing import Any, Callable

from sqlalchemy.engine import Connection, Row
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger("foodie.statements")


class Binder:
    """Collects typed parameters by 1-based position."""

    def __init__(self) -> None:
        self._values: dict[int, Any] = {}

    def _put(self, index: int, value: Any) -> None:
        if index < 1:
            raise IndexError(f"Parameter positions start at 1, got {index}")
        self._values[index] = value

    def bind_string(self, index: int, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(f"Expected str for parameter {index}, got {type(value).__name__}")
        self._put(index, value)

    def bind_int(self, index: int, value: int) -> None:
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"Expected int for parameter {index}, got {type(value).__name__}")
        self._put(index, value)

    def bind_real(self, index: int, value: float) -> None:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TypeError(f"Expected float for parameter {index}, got {type(value).__name__}")
        self._put(index, float(value))

    def bind_optional_real(self, index: int, value: float | None) -> None:
        if value is None:
            self._put(index, None)
        else:
            self.bind_real(index, value)

    def parameters(self) -> tuple:
        if not self._values:
            return ()
        missing = [i for i in range(1, max(self._values) + 1) if i not in self._values]
        if missing:
            raise IndexError(f"Parameter positions left unbound: {missing}")
        return tuple(self._values[i] for i in sorted(self._values))


class RowCursor:
    """Typed, 0-based column access over the current result row."""

    def __init__(self, row: Row) -> None:
        self._row = row

    def __len__(self) -> int:
        return len(self._row)

    def is_null(self, index: int) -> bool:
        return self._row[index] is None

    def string(self, index: int) -> str:
        value = self._row[index]
        if value is None:
            return ""
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return str(value)

    def optional_string(self, index: int) -> str | None:
        if self.is_null(index):
            return None
        return self.string(index)

    def integer(self, index: int) -> int:
        value = self._row[index]
        return 0 if value is None else int(value)

    def real(self, index: int) -> float:
        value = self._row[index]
        return 0.0 if value is None else float(value)

    def optional_real(self, index: int) -> float | None:
        value = self._row[index]
        return None if value is None else float(value)


BindFn = Callable[[Binder], None]
RowHandler = Callable[[RowCursor], None]


def _error_text(exc: SQLAlchemyError) -> str:
    # DBAPIError wraps the driver exception, which carries SQLite's own message.
    orig = getattr(exc, "orig", None)
    return str(orig) if orig is not None else str(exc)


def _parameters(bind: BindFn | None) -> tuple:
    binder = Binder()
    if bind is not None:
        bind(binder)
    return binder.parameters()


def _reset(conn: Connection) -> None:
    if conn.in_transaction():
        conn.rollback()


def execute(conn: Connection | None, sql: str, bind: BindFn | None = None) -> bool:
    """
    Run a statement that is not expected to return rows.

    Returns True only when the statement ran to completion; a statement that
    produces a row, or fails to prepare or execute, returns False.
    """
    if conn is None:
        logger.error("No open database connection for statement: %s", sql.strip())
        return False

    params = _parameters(bind)
    try:
        result = conn.exec_driver_sql(sql, params)
    except SQLAlchemyError as exc:
        logger.error("Error preparing statement: %s", sql.strip())
        logger.error("SQLite error: %s", _error_text(exc))
        _reset(conn)
        return False

    try:
        if result.returns_rows and result.fetchone() is not None:
            return False
        return True
    except SQLAlchemyError as exc:
        logger.error("Error stepping statement: %s (%s)", sql.strip(), _error_text(exc))
        return False
    finally:
        result.close()


def query(
    conn: Connection | None,
    sql: str,
    bind: BindFn | None = None,
    row_handler: RowHandler | None = None,
) -> bool:
    """
    Run a query and feed every row to `row_handler`.

    Returns whether the statement was prepared. Errors while stepping end the
    iteration early and are logged; exceptions raised by `row_handler` itself
    propagate once the result has been closed.
    """
    if conn is None:
        logger.error("No open database connection for query: %s", sql.strip())
        return False

    params = _parameters(bind)
    try:
        result = conn.exec_driver_sql(sql, params)
    except SQLAlchemyError as exc:
        logger.error("Error preparing query: %s", sql.strip())
        logger.error("SQLite error: %s", _error_text(exc))
        _reset(conn)
        return False

    try:
        if not result.returns_rows:
            return True
        while True:
            try:
                row = result.fetchone()
            except SQLAlchemyError as exc:
                logger.error("Error stepping query: %s (%s)", sql.strip(), _error_text(exc))
                break
            if row is None:
                break
            if row_handler is not None:
                row_handler(RowCursor(row))
    finally:
        result.close()
    return True
