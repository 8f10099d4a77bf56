from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import crud
import models  # noqa: F401
import schemas as S
from db import Base, build_engine


def populate(db):
    """A small catalog: one book with two copies, two members, one librarian."""
    cat = crud.create_category(db, S.CategoryIn(category_name="Fiction"))
    pub = crud.create_publisher(db, S.PublisherIn(publisher_name="Penguin Random House"))
    author = crud.create_author(db, S.AuthorIn(first_name="George", last_name="Orwell",
                                               birth_date=date(1903, 6, 25)))
    book = crud.create_book(db, S.BookIn(
        isbn="978-0-452-28423-4", title="1984", publication_year=1949, pages=328,
        category_id=cat.category_id, publisher_id=pub.publisher_id,
        authors=[S.BookAuthorIn(author_id=author.author_id)],
    ))
    copy = crud.create_copy(db, S.CopyIn(book_id=book.book_id, copy_number="COPY-001", price=Decimal("15.99")))
    other_copy = crud.create_copy(db, S.CopyIn(book_id=book.book_id, copy_number="COPY-002"))
    member = crud.create_member(db, S.MemberIn(member_number="MEM001", first_name="John",
                                               last_name="Smith", email="john.smith@mail.org"))
    other_member = crud.create_member(db, S.MemberIn(member_number="MEM002", first_name="Sarah",
                                                     last_name="Johnson", email="sarah.johnson@mail.org"))
    staff = crud.create_staff(db, S.StaffIn(employee_id="EMP001", first_name="Alice",
                                            last_name="Wilson", email="alice.wilson@mail.org"))
    return SimpleNamespace(
        category_id=cat.category_id,
        publisher_id=pub.publisher_id,
        author_id=author.author_id,
        book_id=book.book_id,
        copy_id=copy.copy_id,
        other_copy_id=other_copy.copy_id,
        member_id=member.member_id,
        other_member_id=other_member.member_id,
        staff_id=staff.staff_id,
    )


@pytest.fixture
def engine():
    eng = build_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def db(engine):
    Session = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    with Session() as session:
        yield session


@pytest.fixture
def library(db):
    return populate(db)


@pytest.fixture
def file_sessions(tmp_path):
    """Session factory on a file database, so separate sessions use separate connections."""
    eng = build_engine(
        f"sqlite:///{tmp_path / 'library.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(eng)
    Session = sessionmaker(bind=eng, autoflush=False, autocommit=False)
    with Session() as setup:
        lib = populate(setup)
    yield Session, lib
    eng.dispose()
