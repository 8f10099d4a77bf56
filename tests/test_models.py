from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

import crud
import models as M
import schemas as S
from errors import CheckConstraintViolation


def count(db, model):
    return db.scalar(select(func.count()).select_from(model))


def test_author_death_on_birth_date_rejected(db):
    born = date(1903, 6, 25)
    with pytest.raises(CheckConstraintViolation) as exc:
        crud.create_author(db, S.AuthorIn(first_name="A", last_name="B", birth_date=born, death_date=born))
    assert exc.value.rule == "chk_death_after_birth"
    assert exc.value.table == "authors"
    assert count(db, M.Author) == 0


def test_author_death_after_birth_accepted(db):
    a = crud.create_author(db, S.AuthorIn(first_name="George", last_name="Orwell",
                                          birth_date=date(1903, 6, 25), death_date=date(1950, 1, 21)))
    assert a.death_date > a.birth_date


def test_author_death_without_birth_accepted(db):
    a = crud.create_author(db, S.AuthorIn(first_name="Anon", last_name="Ymous", death_date=date(1500, 1, 1)))
    assert a.birth_date is None


@pytest.mark.parametrize("pages", [0, -10])
def test_book_pages_must_be_positive(db, pages):
    with pytest.raises(CheckConstraintViolation) as exc:
        crud.create_book(db, S.BookIn(isbn="111", title="T", pages=pages))
    assert exc.value.rule == "chk_pages_positive"
    assert count(db, M.Book) == 0


def test_book_publication_year_cannot_be_future(db):
    with pytest.raises(CheckConstraintViolation) as exc:
        crud.create_book(db, S.BookIn(isbn="111", title="T", publication_year=date.today().year + 1))
    assert exc.value.rule == "chk_publication_year"

    b = crud.create_book(db, S.BookIn(isbn="111", title="T", publication_year=date.today().year))
    assert b.language == "English"


def test_book_isbn_required(db):
    with pytest.raises(CheckConstraintViolation) as exc:
        crud.create_book(db, S.BookIn(isbn="  ", title="T"))
    assert exc.value.rule == "not_null:books.isbn"


def test_category_name_not_blank(db):
    with pytest.raises(CheckConstraintViolation):
        crud.create_category(db, S.CategoryIn(category_name=""))


def _member(max_books=5, **kw):
    return S.MemberIn(member_number="MEM001", first_name="John", last_name="Smith",
                      email="john@mail.org", max_books_allowed=max_books, **kw)


@pytest.mark.parametrize("max_books", [0, 21, -1])
def test_member_max_books_out_of_range(db, max_books):
    with pytest.raises(CheckConstraintViolation) as exc:
        crud.create_member(db, _member(max_books))
    assert exc.value.rule == "chk_max_books"


@pytest.mark.parametrize("max_books", [1, 20])
def test_member_max_books_bounds_accepted(db, max_books):
    assert crud.create_member(db, _member(max_books)).max_books_allowed == max_books


def test_member_membership_date_not_in_future(db):
    with pytest.raises(CheckConstraintViolation) as exc:
        crud.create_member(db, _member(membership_date=date.today() + timedelta(days=1)))
    assert exc.value.rule == "chk_membership_date"


def test_member_defaults(db):
    m = crud.create_member(db, _member())
    assert m.membership_date == date.today()
    assert m.membership_type == "Public"
    assert m.status == "Active"


def test_member_update_is_validated(db):
    m = crud.create_member(db, _member())
    with pytest.raises(CheckConstraintViolation):
        crud.update_member(db, m.member_id, S.MemberUpdateIn(max_books_allowed=25))
    db.refresh(m)
    assert m.max_books_allowed == 5


def test_member_bad_status_rejected(db):
    with pytest.raises(CheckConstraintViolation) as exc:
        crud.create_member(db, _member(status="Banned"))
    assert exc.value.rule == "chk_members_status"


def test_copy_bad_condition_rejected(db, library):
    with pytest.raises(CheckConstraintViolation) as exc:
        crud.create_copy(db, S.CopyIn(book_id=library.book_id, copy_number="X", condition_status="Mint"))
    assert exc.value.rule == "chk_book_copies_condition_status"


def test_book_author_bad_role_rejected(db, library):
    author = crud.create_author(db, S.AuthorIn(first_name="Tr", last_name="Anslator"))
    with pytest.raises(CheckConstraintViolation) as exc:
        crud.add_book_author(db, library.book_id, author.author_id, role="Illustrator")
    assert exc.value.rule == "chk_book_authors_author_role"


@pytest.mark.parametrize("fields, rule", [
    ({"due_date": date(2024, 1, 15)}, "chk_due_after_loan"),
    ({"due_date": date(2024, 1, 1)}, "chk_due_after_loan"),
    ({"return_date": date(2024, 1, 14)}, "chk_return_after_loan"),
    ({"renewal_count": 6}, "chk_renewal_count"),
    ({"renewal_count": -1}, "chk_renewal_count"),
    ({"fine_amount": Decimal("-0.01")}, "chk_fine_amount"),
    ({"status": "Pending"}, "chk_loans_status"),
])
def test_loan_row_checks(db, library, fields, rule):
    values = dict(member_id=library.member_id, copy_id=library.copy_id,
                  loan_date=date(2024, 1, 15), due_date=date(2024, 2, 15))
    values.update(fields)
    db.add(M.Loan(**values))
    with pytest.raises(CheckConstraintViolation) as exc:
        db.flush()
    assert exc.value.rule == rule
    db.rollback()
    assert count(db, M.Loan) == 0


def test_loan_return_on_loan_date_accepted(db, library):
    day = date(2024, 1, 15)
    db.add(M.Loan(member_id=library.member_id, copy_id=library.copy_id,
                  loan_date=day, due_date=day + timedelta(days=30), return_date=day))
    db.commit()
    assert count(db, M.Loan) == 1
