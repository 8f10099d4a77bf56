from datetime import date

import pytest
from sqlalchemy import func, select

import crud
import loans
import models as M
import schemas as S
from errors import ForeignKeyViolation, NotFoundError, UniqueConstraintViolation


def count(db, model, *where):
    return db.scalar(select(func.count()).select_from(model).where(*where))


def test_create_book_links_authors(db, library):
    book = db.get(M.Book, library.book_id)
    assert [a.last_name for a in book.authors] == ["Orwell"]
    assert book.author_links[0].author_role == "Primary Author"
    assert book.category.category_name == "Fiction"


def test_duplicate_isbn_rejected(db, library):
    with pytest.raises(UniqueConstraintViolation) as exc:
        crud.create_book(db, S.BookIn(isbn="978-0-452-28423-4", title="Nineteen Eighty-Four"))
    assert exc.value.rule == "books.isbn"
    assert count(db, M.Book) == 1


def test_duplicate_copy_number_for_same_book_rejected(db, library):
    with pytest.raises(UniqueConstraintViolation) as exc:
        crud.create_copy(db, S.CopyIn(book_id=library.book_id, copy_number="COPY-001"))
    assert exc.value.rule == "unique_book_copy"
    assert count(db, M.BookCopy, M.BookCopy.book_id == library.book_id) == 2


def test_same_copy_number_on_other_book_accepted(db, library):
    other = crud.create_book(db, S.BookIn(isbn="978-0-14-143951-8", title="Pride and Prejudice"))
    c = crud.create_copy(db, S.CopyIn(book_id=other.book_id, copy_number="COPY-001"))
    assert c.status == "Available"
    assert c.condition_status == "Good"
    assert c.acquisition_date == date.today()


@pytest.mark.parametrize("fields, rule", [
    ({"member_number": "MEM001", "email": "new@mail.org"}, "members.member_number"),
    ({"member_number": "MEM999", "email": "john.smith@mail.org"}, "members.email"),
])
def test_duplicate_member_rejected(db, library, fields, rule):
    with pytest.raises(UniqueConstraintViolation) as exc:
        crud.create_member(db, S.MemberIn(first_name="J", last_name="S", **fields))
    assert exc.value.rule == rule


def test_duplicate_employee_id_rejected(db, library):
    with pytest.raises(UniqueConstraintViolation) as exc:
        crud.create_staff(db, S.StaffIn(employee_id="EMP001", first_name="B", last_name="M",
                                        email="bob@mail.org"))
    assert exc.value.rule == "staff.employee_id"


def test_duplicate_category_name_rejected(db, library):
    with pytest.raises(UniqueConstraintViolation):
        crud.create_category(db, S.CategoryIn(category_name="Fiction"))


def test_copy_for_missing_book_rejected(db):
    with pytest.raises(ForeignKeyViolation) as exc:
        crud.create_copy(db, S.CopyIn(book_id=999, copy_number="COPY-001"))
    assert exc.value.rule == "fk_book_copies_book"


def test_book_with_missing_category_rejected(db):
    with pytest.raises(ForeignKeyViolation) as exc:
        crud.create_book(db, S.BookIn(isbn="1", title="T", category_id=42))
    assert exc.value.rule == "fk_books_category"
    assert count(db, M.Book) == 0


def test_book_with_missing_author_rejected(db):
    with pytest.raises(ForeignKeyViolation):
        crud.create_book(db, S.BookIn(isbn="1", title="T", authors=[S.BookAuthorIn(author_id=7)]))
    assert count(db, M.Book) == 0


def test_duplicate_author_link_rejected(db, library):
    with pytest.raises(UniqueConstraintViolation):
        crud.add_book_author(db, library.book_id, library.author_id, role="Editor")


def test_update_book_isbn_must_stay_unique(db, library):
    other = crud.create_book(db, S.BookIn(isbn="978-0-14-143951-8", title="Pride and Prejudice"))
    with pytest.raises(UniqueConstraintViolation):
        crud.update_book(db, other.book_id, S.BookUpdateIn(isbn="978-0-452-28423-4"))
    b = crud.update_book(db, other.book_id, S.BookUpdateIn(edition="2nd", pages=432))
    assert (b.edition, b.pages, b.isbn) == ("2nd", 432, "978-0-14-143951-8")


def test_update_missing_row(db):
    with pytest.raises(NotFoundError):
        crud.update_staff(db, 404, S.StaffUpdateIn(position="Manager"))


def test_update_copy_keeps_status(db, library):
    c = crud.update_copy(db, library.copy_id, S.CopyUpdateIn(location="Section B, Shelf 2"))
    assert c.location == "Section B, Shelf 2"
    assert c.status == "Available"


def test_delete_book_cascades(db, library):
    loans.issue_loan(db, S.LoanIn(member_id=library.member_id, copy_id=library.copy_id))
    crud.delete_book(db, library.book_id)
    db.expire_all()
    assert count(db, M.BookCopy) == 0
    assert count(db, M.BookAuthor) == 0
    assert count(db, M.Loan) == 0
    assert db.get(M.Author, library.author_id) is not None


def test_delete_category_nulls_book_reference(db, library):
    crud.delete_category(db, library.category_id)
    db.expire_all()
    assert db.get(M.Book, library.book_id).category_id is None


def test_delete_publisher_nulls_book_reference(db, library):
    crud.delete_publisher(db, library.publisher_id)
    db.expire_all()
    assert db.get(M.Book, library.book_id).publisher_id is None


def test_delete_author_removes_links_only(db, library):
    crud.delete_author(db, library.author_id)
    db.expire_all()
    assert count(db, M.BookAuthor) == 0
    assert db.get(M.Book, library.book_id) is not None


def test_delete_staff_nulls_loan_reference(db, library):
    loan = loans.issue_loan(db, S.LoanIn(member_id=library.member_id, copy_id=library.copy_id,
                                         staff_id=library.staff_id))
    crud.delete_staff(db, library.staff_id)
    db.expire_all()
    assert db.get(M.Loan, loan.loan_id).staff_id is None


def test_delete_copy_removes_its_loans(db, library):
    loans.issue_loan(db, S.LoanIn(member_id=library.member_id, copy_id=library.copy_id))
    crud.delete_copy(db, library.copy_id)
    db.expire_all()
    assert count(db, M.Loan) == 0
    assert db.get(M.Member, library.member_id) is not None


def test_delete_member_removes_loans_and_frees_copy(db, library):
    loans.issue_loan(db, S.LoanIn(member_id=library.member_id, copy_id=library.copy_id))
    crud.delete_member(db, library.member_id)
    db.expire_all()
    assert count(db, M.Loan) == 0
    assert db.get(M.BookCopy, library.copy_id).status == "Available"


def test_delete_missing_row(db):
    with pytest.raises(NotFoundError):
        crud.delete_book(db, 1)
