import re

from sqlalchemy.exc import IntegrityError


class LibraryError(Exception):
    """Base exception for library data-model errors."""


class ConstraintViolation(LibraryError):
    """A write broke a declared rule; ``rule`` names the constraint."""

    def __init__(self, rule: str, message: str | None = None, table: str | None = None):
        self.rule = rule
        self.table = table
        self.message = message or rule
        super().__init__(self.message)

    def __repr__(self):
        return f"{type(self).__name__}(rule={self.rule!r}, table={self.table!r})"


class UniqueConstraintViolation(ConstraintViolation):
    """Duplicate value in a unique column or column group."""


class CheckConstraintViolation(ConstraintViolation, ValueError):
    """Date ordering, numeric range or enumerated value rejected."""


class ForeignKeyViolation(ConstraintViolation):
    """Reference to a parent row that does not exist."""


class NotFoundError(LibraryError):
    """Requested row does not exist."""


class InvalidTransitionError(LibraryError):
    """Copy or loan status change not allowed from the current state."""


class CopyNotAvailableError(InvalidTransitionError):
    """Copy cannot be lent in its current state."""


class BorrowingLimitError(InvalidTransitionError):
    """Member already holds max_books_allowed open loans."""


class ConcurrentModificationError(LibraryError):
    """Row changed underneath us between read and write."""


# MySQL server error codes
ER_DUP_ENTRY = 1062
ER_BAD_NULL_ERROR = 1048
ER_ROW_IS_REFERENCED_2 = 1451
ER_NO_REFERENCED_ROW_2 = 1452
ER_CHECK_CONSTRAINT_VIOLATED = 3819

_SQLITE_UNIQUE = re.compile(r"UNIQUE constraint failed: (?P<cols>[\w., ]+)")
_SQLITE_CHECK = re.compile(r"CHECK constraint failed: (?P<name>\w+)")
_SQLITE_NOT_NULL = re.compile(r"NOT NULL constraint failed: (?P<col>[\w.]+)")
_MYSQL_DUP_KEY = re.compile(r"for key '(?P<key>[^']+)'")
_MYSQL_CHECK = re.compile(r"Check constraint '(?P<name>[^']+)'")
_MYSQL_FK = re.compile(r"CONSTRAINT `(?P<name>[^`]+)`")
_MYSQL_COLUMN = re.compile(r"Column '(?P<col>[^']+)'")


def _table_of(qualified: str) -> str | None:
    return qualified.split(".", 1)[0] if "." in qualified else None


def translate_integrity_error(exc: IntegrityError) -> ConstraintViolation:
    """Map a driver IntegrityError (SQLite or MySQL) onto the error taxonomy."""
    orig = exc.orig
    args = getattr(orig, "args", ()) or ()
    code = args[0] if args and isinstance(args[0], int) else None
    text = str(args[1] if code is not None and len(args) > 1 else orig)

    if code == ER_DUP_ENTRY:
        m = _MYSQL_DUP_KEY.search(text)
        key = m.group("key") if m else "unique"
        return UniqueConstraintViolation(key, text, _table_of(key))
    if code == ER_CHECK_CONSTRAINT_VIOLATED:
        m = _MYSQL_CHECK.search(text)
        return CheckConstraintViolation(m.group("name") if m else "check", text)
    if code in (ER_NO_REFERENCED_ROW_2, ER_ROW_IS_REFERENCED_2):
        m = _MYSQL_FK.search(text)
        return ForeignKeyViolation(m.group("name") if m else "foreign_key", text)
    if code == ER_BAD_NULL_ERROR:
        m = _MYSQL_COLUMN.search(text)
        return CheckConstraintViolation(f"not_null:{m.group('col') if m else '?'}", text)

    m = _SQLITE_UNIQUE.search(text)
    if m:
        cols = m.group("cols")
        return UniqueConstraintViolation(cols, text, _table_of(cols))
    m = _SQLITE_CHECK.search(text)
    if m:
        return CheckConstraintViolation(m.group("name"), text)
    if "FOREIGN KEY constraint failed" in text:
        return ForeignKeyViolation("foreign_key", text)
    m = _SQLITE_NOT_NULL.search(text)
    if m:
        col = m.group("col")
        return CheckConstraintViolation(f"not_null:{col}", text, _table_of(col))
    return ConstraintViolation("integrity", text)
