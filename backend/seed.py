"""Sample catalog, members, staff and loans for a fresh database.

Run ``python seed.py`` (or ``library-seed``) to recreate the tables and load them.
"""
import logging
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

import crud
import loans
import schemas as S
from db import SessionLocal, engine, init_db, settings

log = logging.getLogger(__name__)

CATEGORIES = [
    ("Fiction", "Fictional literature including novels and short stories"),
    ("Non-Fiction", "Factual books including biographies, history, and science"),
    ("Science", "Scientific literature and research"),
    ("Technology", "Computer science, engineering, and technology books"),
    ("History", "Historical books and documentaries"),
    ("Biography", "Life stories of notable people"),
    ("Children", "Books for children and young adults"),
    ("Reference", "Dictionaries, encyclopedias, and reference materials"),
]

PUBLISHERS = [
    S.PublisherIn(publisher_name="Penguin Random House", address="1745 Broadway, New York, NY 10019",
                  phone="212-782-9000", email="info@penguinrandomhouse.com", established_year=1927),
    S.PublisherIn(publisher_name="HarperCollins", address="195 Broadway, New York, NY 10007",
                  phone="212-207-7000", email="info@harpercollins.com", established_year=1989),
    S.PublisherIn(publisher_name="Simon & Schuster", address="1230 Avenue of the Americas, New York, NY 10020",
                  phone="212-698-7000", email="info@simonandschuster.com", established_year=1924),
    S.PublisherIn(publisher_name="Macmillan Publishers", address="120 Broadway, New York, NY 10271",
                  phone="646-307-5151", email="info@macmillan.com", established_year=1843),
]

AUTHORS = [
    S.AuthorIn(first_name="George", last_name="Orwell", birth_date=date(1903, 6, 25), nationality="British",
               biography="English novelist and journalist known for Animal Farm and 1984"),
    S.AuthorIn(first_name="Jane", last_name="Austen", birth_date=date(1775, 12, 16), nationality="British",
               biography="English novelist known for Pride and Prejudice and Sense and Sensibility"),
    S.AuthorIn(first_name="Mark", last_name="Twain", birth_date=date(1835, 11, 30), nationality="American",
               biography="American writer known for The Adventures of Tom Sawyer and Adventures of Huckleberry Finn"),
    S.AuthorIn(first_name="Agatha", last_name="Christie", birth_date=date(1890, 9, 15), nationality="British",
               biography="English writer known for detective novels featuring Hercule Poirot and Miss Marple"),
]

# isbn, title, year, category #, publisher #, pages, description, author #
BOOKS = [
    ("978-0-452-28423-4", "1984", 1949, 1, 1, 328, "Dystopian social science fiction novel", 1),
    ("978-0-14-143951-8", "Pride and Prejudice", 1813, 1, 1, 432, "Romantic novel of manners", 2),
    ("978-0-486-40077-6", "The Adventures of Tom Sawyer", 1876, 7, 2, 274, "Coming-of-age story set in Missouri", 3),
    ("978-0-06-207348-4", "Murder on the Orient Express", 1934, 1, 2, 256, "Detective novel featuring Hercule Poirot", 4),
]

# book #, copy_number, condition, location, price
COPIES = [
    (1, "COPY-001", "Excellent", "Section A, Shelf 1", "15.99"),
    (1, "COPY-002", "Good", "Section A, Shelf 1", "15.99"),
    (2, "COPY-003", "Excellent", "Section B, Shelf 3", "12.99"),
    (3, "COPY-004", "Good", "Section C, Shelf 2", "10.99"),
    (4, "COPY-005", "Excellent", "Section A, Shelf 5", "14.99"),
]

MEMBERS = [
    S.MemberIn(member_number="MEM001", first_name="John", last_name="Smith",
               email="john.smith@email.com", phone="555-0101", membership_type="Public"),
    S.MemberIn(member_number="MEM002", first_name="Sarah", last_name="Johnson",
               email="sarah.johnson@email.com", phone="555-0102", membership_type="Student"),
    S.MemberIn(member_number="MEM003", first_name="Michael", last_name="Brown",
               email="michael.brown@email.com", phone="555-0103", membership_type="Faculty"),
    S.MemberIn(member_number="MEM004", first_name="Emily", last_name="Davis",
               email="emily.davis@email.com", phone="555-0104", membership_type="Public"),
]

STAFF = [
    S.StaffIn(employee_id="EMP001", first_name="Alice", last_name="Wilson", email="alice.wilson@library.com",
              phone="555-0201", position="Librarian", department="Circulation"),
    S.StaffIn(employee_id="EMP002", first_name="Bob", last_name="Martinez", email="bob.martinez@library.com",
              phone="555-0202", position="Assistant Librarian", department="Reference"),
    S.StaffIn(employee_id="EMP003", first_name="Carol", last_name="Anderson", email="carol.anderson@library.com",
              phone="555-0203", position="Library Manager", department="Administration"),
]

# member #, copy #, staff #, loan_date, due_date
LOANS = [
    (1, 1, 1, date(2024, 1, 15), date(2024, 2, 15)),
    (2, 3, 1, date(2024, 1, 20), date(2024, 2, 20)),
    (3, 4, 2, date(2024, 1, 25), date(2024, 2, 25)),
]


def seed(db: Session):
    """Load the sample data. Loans go through issue_loan so their copies end up Borrowed."""
    categories = [crud.create_category(db, S.CategoryIn(category_name=n, description=d)) for n, d in CATEGORIES]
    publishers = [crud.create_publisher(db, p) for p in PUBLISHERS]
    authors = [crud.create_author(db, a) for a in AUTHORS]

    books = []
    for isbn, title, year, cat, pub, pages, desc, author in BOOKS:
        books.append(crud.create_book(db, S.BookIn(
            isbn=isbn, title=title, publication_year=year, pages=pages, description=desc,
            category_id=categories[cat - 1].category_id,
            publisher_id=publishers[pub - 1].publisher_id,
            authors=[S.BookAuthorIn(author_id=authors[author - 1].author_id)],
        )))

    copies = [
        crud.create_copy(db, S.CopyIn(
            book_id=books[b - 1].book_id, copy_number=number, condition_status=cond,
            location=loc, price=Decimal(price),
        ))
        for b, number, cond, loc, price in COPIES
    ]
    members = [crud.create_member(db, m) for m in MEMBERS]
    staff = [crud.create_staff(db, s) for s in STAFF]

    for m, c, s, loan_date, due_date in LOANS:
        loans.issue_loan(db, S.LoanIn(
            member_id=members[m - 1].member_id,
            copy_id=copies[c - 1].copy_id,
            staff_id=staff[s - 1].staff_id,
            loan_date=loan_date,
            due_date=due_date,
        ))
    log.info(
        "seeded %d categories, %d books, %d copies, %d members, %d staff, %d loans",
        len(categories), len(books), len(copies), len(members), len(staff), len(LOANS),
    )


def main():
    logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    init_db(engine, drop=True)
    with SessionLocal() as db:
        seed(db)
    log.info("Library Management System Database Created Successfully!")


if __name__ == "__main__":
    main()
