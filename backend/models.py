from datetime import date

from sqlalchemy import (
    Column, Integer, String, DateTime, Date, Enum, Text, DECIMAL, ForeignKey,
    CheckConstraint, UniqueConstraint, Index, event,
)
from sqlalchemy.orm import Session, relationship
from sqlalchemy.sql import func

from db import Base
from errors import CheckConstraintViolation

AUTHOR_ROLES = ("Primary Author", "Co-Author", "Editor", "Translator")
COPY_CONDITIONS = ("Excellent", "Good", "Fair", "Poor", "Damaged")
COPY_STATUSES = ("Available", "Borrowed", "Reserved", "Maintenance", "Lost")
MEMBERSHIP_TYPES = ("Student", "Faculty", "Staff", "Public", "Senior")
MEMBER_STATUSES = ("Active", "Suspended", "Expired", "Blocked")
STAFF_STATUSES = ("Active", "Inactive", "On Leave")
LOAN_STATUSES = ("Active", "Returned", "Overdue", "Lost")
OPEN_LOAN_STATUSES = ("Active", "Overdue")

MAX_RENEWALS = 5
MAX_BOOKS_LIMIT = 20


def _one_of(column: str, values, name: str) -> CheckConstraint:
    quoted = ", ".join(f"'{v}'" for v in values)
    return CheckConstraint(f"{column} IN ({quoted})", name=name)


class _RowChecks:
    """Explicit versions of the table CHECK rules, run before every flush."""

    def _fail(self, rule: str, message: str):
        raise CheckConstraintViolation(rule, message, self.__tablename__)

    def _require(self, *columns):
        for col in columns:
            value = getattr(self, col)
            if value is None or (isinstance(value, str) and not value.strip()):
                self._fail(f"not_null:{self.__tablename__}.{col}", f"{col} is required")

    def _choice(self, column: str, choices):
        value = getattr(self, column)
        if value is not None and value not in choices:
            self._fail(
                f"chk_{self.__tablename__}_{column}",
                f"{column} must be one of {', '.join(choices)}; got {value!r}",
            )

    def check_row(self):
        pass


class Category(_RowChecks, Base):
    __tablename__ = "categories"
    category_id = Column(Integer, primary_key=True, autoincrement=True)
    category_name = Column(String(100), unique=True, nullable=False)
    description = Column(Text)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    books = relationship("Book", back_populates="category", passive_deletes=True)

    def check_row(self):
        self._require("category_name")


class Publisher(_RowChecks, Base):
    __tablename__ = "publishers"
    publisher_id = Column(Integer, primary_key=True, autoincrement=True)
    publisher_name = Column(String(200), nullable=False)
    address = Column(Text)
    phone = Column(String(20))
    email = Column(String(100), unique=True)
    website = Column(String(200))
    established_year = Column(Integer)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    books = relationship("Book", back_populates="publisher", passive_deletes=True)

    def check_row(self):
        self._require("publisher_name")


class Author(_RowChecks, Base):
    __tablename__ = "authors"
    author_id = Column(Integer, primary_key=True, autoincrement=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    birth_date = Column(Date)
    death_date = Column(Date)
    nationality = Column(String(100))
    biography = Column(Text)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    book_links = relationship(
        "BookAuthor", back_populates="author", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        CheckConstraint("death_date IS NULL OR death_date > birth_date", name="chk_death_after_birth"),
        Index("idx_authors_name", "last_name", "first_name"),
    )

    def check_row(self):
        self._require("first_name", "last_name")
        # strict: an author cannot die on the day they were born
        if self.death_date is not None and self.birth_date is not None:
            if self.death_date <= self.birth_date:
                self._fail("chk_death_after_birth", "death_date must be after birth_date")


class Book(_RowChecks, Base):
    __tablename__ = "books"
    book_id = Column(Integer, primary_key=True, autoincrement=True)
    isbn = Column(String(20), unique=True, nullable=False)
    title = Column(String(300), nullable=False)
    subtitle = Column(String(300))
    publication_year = Column(Integer)
    edition = Column(String(50))
    pages = Column(Integer)
    language = Column(String(50), default="English")
    description = Column(Text)
    category_id = Column(Integer, ForeignKey("categories.category_id", ondelete="SET NULL", name="fk_books_category"), nullable=True)
    publisher_id = Column(Integer, ForeignKey("publishers.publisher_id", ondelete="SET NULL", name="fk_books_publisher"), nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    category = relationship("Category", back_populates="books")
    publisher = relationship("Publisher", back_populates="books")
    author_links = relationship(
        "BookAuthor", back_populates="book", cascade="all, delete-orphan", passive_deletes=True
    )
    copies = relationship(
        "BookCopy", back_populates="book", cascade="all, delete-orphan", passive_deletes=True
    )

    # publication_year <= current year is checked in check_row only:
    # CURDATE() is not allowed inside a CHECK on MySQL 8
    __table_args__ = (
        CheckConstraint("pages > 0", name="chk_pages_positive"),
        Index("idx_books_title", "title"),
        Index("idx_books_isbn", "isbn"),
    )

    @property
    def authors(self):
        return [link.author for link in self.author_links]

    def check_row(self):
        self._require("isbn", "title")
        if self.pages is not None and self.pages <= 0:
            self._fail("chk_pages_positive", "pages must be greater than 0")
        if self.publication_year is not None and self.publication_year > date.today().year:
            self._fail("chk_publication_year", "publication_year cannot be in the future")


class BookAuthor(_RowChecks, Base):
    __tablename__ = "book_authors"
    book_id = Column(Integer, ForeignKey("books.book_id", ondelete="CASCADE", name="fk_book_authors_book"), primary_key=True)
    author_id = Column(Integer, ForeignKey("authors.author_id", ondelete="CASCADE", name="fk_book_authors_author"), primary_key=True)
    author_role = Column(Enum(*AUTHOR_ROLES, name="author_role"), default="Primary Author")

    book = relationship("Book", back_populates="author_links")
    author = relationship("Author", back_populates="book_links")

    __table_args__ = (
        _one_of("author_role", AUTHOR_ROLES, "chk_book_authors_author_role"),
    )

    def check_row(self):
        self._choice("author_role", AUTHOR_ROLES)


class BookCopy(_RowChecks, Base):
    __tablename__ = "book_copies"
    copy_id = Column(Integer, primary_key=True, autoincrement=True)
    book_id = Column(Integer, ForeignKey("books.book_id", ondelete="CASCADE", name="fk_book_copies_book"), nullable=False)
    copy_number = Column(String(50), nullable=False)
    condition_status = Column(Enum(*COPY_CONDITIONS, name="copy_condition"), default="Good")
    location = Column(String(100))
    acquisition_date = Column(Date, default=date.today)
    price = Column(DECIMAL(10, 2))
    status = Column(Enum(*COPY_STATUSES, name="copy_status"), nullable=False, default="Available")
    notes = Column(Text)
    # bumped on every UPDATE; a stale version makes the flush fail
    version = Column(Integer, nullable=False, server_default="1")
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    book = relationship("Book", back_populates="copies")
    loans = relationship(
        "Loan", back_populates="copy", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        UniqueConstraint("book_id", "copy_number", name="unique_book_copy"),
        _one_of("condition_status", COPY_CONDITIONS, "chk_book_copies_condition_status"),
        _one_of("status", COPY_STATUSES, "chk_book_copies_status"),
        Index("idx_book_copies_status", "status"),
    )
    __mapper_args__ = {"version_id_col": version}

    def check_row(self):
        self._require("copy_number")
        self._choice("condition_status", COPY_CONDITIONS)
        self._choice("status", COPY_STATUSES)


class Member(_RowChecks, Base):
    __tablename__ = "members"
    member_id = Column(Integer, primary_key=True, autoincrement=True)
    member_number = Column(String(20), unique=True, nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(150), unique=True, nullable=False)
    phone = Column(String(20))
    address = Column(Text)
    date_of_birth = Column(Date)
    membership_date = Column(Date, default=date.today)
    membership_type = Column(Enum(*MEMBERSHIP_TYPES, name="membership_type"), default="Public")
    status = Column(Enum(*MEMBER_STATUSES, name="member_status"), default="Active")
    max_books_allowed = Column(Integer, default=5)
    # bumped on every update and on every loan issued to the member, so two
    # issues racing for the same borrowing allowance cannot both commit
    version = Column(Integer, nullable=False, server_default="1")
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    loans = relationship(
        "Loan", back_populates="member", cascade="all, delete-orphan", passive_deletes=True
    )

    # membership_date <= today is checked in check_row only (see Book)
    __table_args__ = (
        CheckConstraint(
            f"max_books_allowed > 0 AND max_books_allowed <= {MAX_BOOKS_LIMIT}", name="chk_max_books"
        ),
        _one_of("membership_type", MEMBERSHIP_TYPES, "chk_members_membership_type"),
        _one_of("status", MEMBER_STATUSES, "chk_members_status"),
        Index("idx_members_email", "email"),
        Index("idx_members_number", "member_number"),
    )
    __mapper_args__ = {"version_id_col": version}

    def check_row(self):
        self._require("member_number", "first_name", "last_name", "email")
        if self.max_books_allowed is not None and not 0 < self.max_books_allowed <= MAX_BOOKS_LIMIT:
            self._fail("chk_max_books", f"max_books_allowed must be between 1 and {MAX_BOOKS_LIMIT}")
        if self.membership_date is not None and self.membership_date > date.today():
            self._fail("chk_membership_date", "membership_date cannot be in the future")
        self._choice("membership_type", MEMBERSHIP_TYPES)
        self._choice("status", MEMBER_STATUSES)


class Staff(_RowChecks, Base):
    __tablename__ = "staff"
    staff_id = Column(Integer, primary_key=True, autoincrement=True)
    employee_id = Column(String(20), unique=True, nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(150), unique=True, nullable=False)
    phone = Column(String(20))
    position = Column(String(100))
    department = Column(String(100))
    hire_date = Column(Date, default=date.today)
    salary = Column(DECIMAL(10, 2))
    status = Column(Enum(*STAFF_STATUSES, name="staff_status"), default="Active")
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    loans = relationship("Loan", back_populates="staff", passive_deletes=True)

    __table_args__ = (
        _one_of("status", STAFF_STATUSES, "chk_staff_status"),
    )

    def check_row(self):
        self._require("employee_id", "first_name", "last_name", "email")
        self._choice("status", STAFF_STATUSES)


class Loan(_RowChecks, Base):
    __tablename__ = "loans"
    loan_id = Column(Integer, primary_key=True, autoincrement=True)
    member_id = Column(Integer, ForeignKey("members.member_id", ondelete="CASCADE", name="fk_loans_member"), nullable=False)
    copy_id = Column(Integer, ForeignKey("book_copies.copy_id", ondelete="CASCADE", name="fk_loans_copy"), nullable=False)
    staff_id = Column(Integer, ForeignKey("staff.staff_id", ondelete="SET NULL", name="fk_loans_staff"), nullable=True)

    loan_date = Column(Date, default=date.today)
    due_date = Column(Date, nullable=False)
    return_date = Column(Date, nullable=True)

    renewal_count = Column(Integer, default=0)
    fine_amount = Column(DECIMAL(8, 2), default=0)
    status = Column(Enum(*LOAN_STATUSES, name="loan_status"), default="Active")
    notes = Column(Text)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    member = relationship("Member", back_populates="loans")
    copy = relationship("BookCopy", back_populates="loans")
    staff = relationship("Staff", back_populates="loans")

    __table_args__ = (
        CheckConstraint("due_date > loan_date", name="chk_due_after_loan"),
        CheckConstraint("return_date IS NULL OR return_date >= loan_date", name="chk_return_after_loan"),
        CheckConstraint(
            f"renewal_count >= 0 AND renewal_count <= {MAX_RENEWALS}", name="chk_renewal_count"
        ),
        CheckConstraint("fine_amount >= 0", name="chk_fine_amount"),
        _one_of("status", LOAN_STATUSES, "chk_loans_status"),
        Index("idx_loans_member", "member_id"),
        Index("idx_loans_copy", "copy_id"),
        Index("idx_loans_status", "status"),
    )

    def is_open(self) -> bool:
        return self.return_date is None and self.status in OPEN_LOAN_STATUSES

    def is_overdue(self, today: date | None = None) -> bool:
        """Overdue is derived from dates; the stored status may lag behind."""
        return self.is_open() and self.due_date < (today or date.today())

    def check_row(self):
        self._require("due_date")
        loan_date = self.loan_date or date.today()
        if self.due_date <= loan_date:
            self._fail("chk_due_after_loan", "due_date must be after loan_date")
        if self.return_date is not None and self.return_date < loan_date:
            self._fail("chk_return_after_loan", "return_date cannot precede loan_date")
        if self.renewal_count is not None and not 0 <= self.renewal_count <= MAX_RENEWALS:
            self._fail("chk_renewal_count", f"renewal_count must be between 0 and {MAX_RENEWALS}")
        if self.fine_amount is not None and self.fine_amount < 0:
            self._fail("chk_fine_amount", "fine_amount cannot be negative")
        self._choice("status", LOAN_STATUSES)


@event.listens_for(Session, "before_flush")
def _check_pending_rows(session, flush_context, instances):
    for obj in list(session.new) + list(session.dirty):
        if isinstance(obj, _RowChecks):
            obj.check_row()
