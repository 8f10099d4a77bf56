import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from db import transaction
from errors import ForeignKeyViolation, NotFoundError, UniqueConstraintViolation
import models as M
import schemas as S

log = logging.getLogger(__name__)


# --- helpers ---
def get_or_404(db: Session, model, pk):
    row = db.get(model, pk)
    if row is None:
        raise NotFoundError(f"{model.__tablename__} {pk} not found")
    return row


def _ensure_parent(db: Session, model, pk, rule: str, table: str):
    if pk is not None and db.get(model, pk) is None:
        raise ForeignKeyViolation(rule, f"{model.__tablename__} {pk} does not exist", table)


def _ensure_unique(db: Session, model, rule: str, exclude=None, **values):
    if any(v is None for v in values.values()):
        return
    existing = db.scalar(select(model).filter_by(**values))
    if existing is not None and existing is not exclude:
        shown = ", ".join(f"{k}={v!r}" for k, v in values.items())
        raise UniqueConstraintViolation(rule, f"{model.__tablename__} with {shown} already exists", model.__tablename__)


def _apply(row, data):
    for k, v in data.model_dump(exclude_unset=True).items():
        setattr(row, k, v)


def _delete(db: Session, model, pk):
    row = get_or_404(db, model, pk)
    with transaction(db):
        db.delete(row)
    log.info("deleted %s %s", model.__tablename__, pk)


# --- catalog ---
def create_category(db: Session, data: S.CategoryIn) -> M.Category:
    _ensure_unique(db, M.Category, "categories.category_name", category_name=data.category_name)
    c = M.Category(**data.model_dump())
    with transaction(db):
        db.add(c)
    db.refresh(c)
    return c


def create_publisher(db: Session, data: S.PublisherIn) -> M.Publisher:
    _ensure_unique(db, M.Publisher, "publishers.email", email=data.email)
    p = M.Publisher(**data.model_dump())
    with transaction(db):
        db.add(p)
    db.refresh(p)
    return p


def create_author(db: Session, data: S.AuthorIn) -> M.Author:
    a = M.Author(**data.model_dump())
    with transaction(db):
        db.add(a)
    db.refresh(a)
    return a


def _check_book_refs(db: Session, category_id, publisher_id):
    _ensure_parent(db, M.Category, category_id, "fk_books_category", "books")
    _ensure_parent(db, M.Publisher, publisher_id, "fk_books_publisher", "books")


def create_book(db: Session, data: S.BookIn) -> M.Book:
    """Insert a book together with its author links in one transaction."""
    _ensure_unique(db, M.Book, "books.isbn", isbn=data.isbn)
    _check_book_refs(db, data.category_id, data.publisher_id)
    seen = set()
    for link in data.authors:
        _ensure_parent(db, M.Author, link.author_id, "fk_book_authors_author", "book_authors")
        if link.author_id in seen:
            raise UniqueConstraintViolation(
                "book_authors.PRIMARY", f"author {link.author_id} listed twice", "book_authors"
            )
        seen.add(link.author_id)

    b = M.Book(**data.model_dump(exclude={"authors"}))
    for link in data.authors:
        b.author_links.append(M.BookAuthor(author_id=link.author_id, author_role=link.author_role))
    with transaction(db):
        db.add(b)
    db.refresh(b)
    log.info("created book %s isbn=%s", b.book_id, b.isbn)
    return b


def add_book_author(db: Session, book_id: int, author_id: int, role: str = "Primary Author") -> M.BookAuthor:
    _ensure_parent(db, M.Book, book_id, "fk_book_authors_book", "book_authors")
    _ensure_parent(db, M.Author, author_id, "fk_book_authors_author", "book_authors")
    if db.get(M.BookAuthor, (book_id, author_id)) is not None:
        raise UniqueConstraintViolation(
            "book_authors.PRIMARY", f"author {author_id} already linked to book {book_id}", "book_authors"
        )
    link = M.BookAuthor(book_id=book_id, author_id=author_id, author_role=role)
    with transaction(db):
        db.add(link)
    return link


def update_book(db: Session, book_id: int, data: S.BookUpdateIn) -> M.Book:
    b = get_or_404(db, M.Book, book_id)
    fields = data.model_dump(exclude_unset=True)
    if "isbn" in fields:
        _ensure_unique(db, M.Book, "books.isbn", exclude=b, isbn=fields["isbn"])
    _check_book_refs(db, fields.get("category_id"), fields.get("publisher_id"))
    with transaction(db):
        _apply(b, data)
    db.refresh(b)
    return b


# --- copies ---
def create_copy(db: Session, data: S.CopyIn) -> M.BookCopy:
    """New copies always start out Available."""
    _ensure_parent(db, M.Book, data.book_id, "fk_book_copies_book", "book_copies")
    _ensure_unique(db, M.BookCopy, "unique_book_copy", book_id=data.book_id, copy_number=data.copy_number)
    c = M.BookCopy(**data.model_dump(exclude_none=True), status="Available")
    with transaction(db):
        db.add(c)
    db.refresh(c)
    log.info("created copy %s (%s) of book %s", c.copy_id, c.copy_number, c.book_id)
    return c


def update_copy(db: Session, copy_id: int, data: S.CopyUpdateIn) -> M.BookCopy:
    c = get_or_404(db, M.BookCopy, copy_id)
    fields = data.model_dump(exclude_unset=True)
    if "copy_number" in fields:
        _ensure_unique(
            db, M.BookCopy, "unique_book_copy", exclude=c, book_id=c.book_id, copy_number=fields["copy_number"]
        )
    with transaction(db):
        _apply(c, data)
    db.refresh(c)
    return c


# --- members / staff ---
def create_member(db: Session, data: S.MemberIn) -> M.Member:
    _ensure_unique(db, M.Member, "members.member_number", member_number=data.member_number)
    _ensure_unique(db, M.Member, "members.email", email=data.email)
    m = M.Member(**data.model_dump(exclude_none=True))
    with transaction(db):
        db.add(m)
    db.refresh(m)
    log.info("registered member %s (%s)", m.member_id, m.member_number)
    return m


def update_member(db: Session, member_id: int, data: S.MemberUpdateIn) -> M.Member:
    m = get_or_404(db, M.Member, member_id)
    fields = data.model_dump(exclude_unset=True)
    if "email" in fields:
        _ensure_unique(db, M.Member, "members.email", exclude=m, email=fields["email"])
    with transaction(db):
        _apply(m, data)
    db.refresh(m)
    return m


def create_staff(db: Session, data: S.StaffIn) -> M.Staff:
    _ensure_unique(db, M.Staff, "staff.employee_id", employee_id=data.employee_id)
    _ensure_unique(db, M.Staff, "staff.email", email=data.email)
    s = M.Staff(**data.model_dump(exclude_none=True))
    with transaction(db):
        db.add(s)
    db.refresh(s)
    return s


def update_staff(db: Session, staff_id: int, data: S.StaffUpdateIn) -> M.Staff:
    s = get_or_404(db, M.Staff, staff_id)
    fields = data.model_dump(exclude_unset=True)
    if "email" in fields:
        _ensure_unique(db, M.Staff, "staff.email", exclude=s, email=fields["email"])
    with transaction(db):
        _apply(s, data)
    db.refresh(s)
    return s


# --- deletes ---
# Book -> copies, author links and (through copies) loans cascade.
# Category, Publisher, Staff -> the reference on dependents is set to NULL.
def delete_category(db: Session, category_id: int):
    _delete(db, M.Category, category_id)


def delete_publisher(db: Session, publisher_id: int):
    _delete(db, M.Publisher, publisher_id)


def delete_author(db: Session, author_id: int):
    _delete(db, M.Author, author_id)


def delete_book(db: Session, book_id: int):
    _delete(db, M.Book, book_id)


def delete_copy(db: Session, copy_id: int):
    _delete(db, M.BookCopy, copy_id)


def delete_staff(db: Session, staff_id: int):
    _delete(db, M.Staff, staff_id)


def delete_member(db: Session, member_id: int):
    """Delete a member and their loans; copies they still hold go back on the shelf."""
    m = get_or_404(db, M.Member, member_id)
    with transaction(db):
        for loan in m.loans:
            if loan.is_open() and loan.copy.status == "Borrowed":
                loan.copy.status = "Available"
        db.delete(m)
    log.info("deleted members %s", member_id)
