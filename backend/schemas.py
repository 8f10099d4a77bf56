from datetime import date
from decimal import Decimal
from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List

# Enumerated columns stay plain str here: the model layer rejects bad values
# with a CheckConstraintViolation that names the rule.


class CategoryIn(BaseModel):
    category_name: str
    description: Optional[str] = None


class PublisherIn(BaseModel):
    publisher_name: str
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    website: Optional[str] = None
    established_year: Optional[int] = None


class AuthorIn(BaseModel):
    first_name: str
    last_name: str
    birth_date: Optional[date] = None
    death_date: Optional[date] = None
    nationality: Optional[str] = None
    biography: Optional[str] = None


class BookAuthorIn(BaseModel):
    author_id: int
    author_role: str = "Primary Author"


class BookIn(BaseModel):
    isbn: str
    title: str
    subtitle: Optional[str] = None
    publication_year: Optional[int] = None
    edition: Optional[str] = None
    pages: Optional[int] = None
    language: str = "English"
    description: Optional[str] = None
    category_id: Optional[int] = None
    publisher_id: Optional[int] = None
    authors: List[BookAuthorIn] = Field(default_factory=list)


class BookUpdateIn(BaseModel):
    isbn: Optional[str] = None
    title: Optional[str] = None
    subtitle: Optional[str] = None
    publication_year: Optional[int] = None
    edition: Optional[str] = None
    pages: Optional[int] = None
    language: Optional[str] = None
    description: Optional[str] = None
    category_id: Optional[int] = None
    publisher_id: Optional[int] = None


class CopyIn(BaseModel):
    book_id: int
    copy_number: str
    condition_status: str = "Good"
    location: Optional[str] = None
    acquisition_date: Optional[date] = None
    price: Optional[Decimal] = None
    notes: Optional[str] = None


class CopyUpdateIn(BaseModel):
    copy_number: Optional[str] = None
    condition_status: Optional[str] = None
    location: Optional[str] = None
    price: Optional[Decimal] = None
    notes: Optional[str] = None


class MemberIn(BaseModel):
    member_number: str
    first_name: str
    last_name: str
    email: EmailStr
    phone: Optional[str] = None
    address: Optional[str] = None
    date_of_birth: Optional[date] = None
    membership_date: Optional[date] = None
    membership_type: str = "Public"
    status: str = "Active"
    max_books_allowed: int = 5


class MemberUpdateIn(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    membership_type: Optional[str] = None
    status: Optional[str] = None
    max_books_allowed: Optional[int] = None


class StaffIn(BaseModel):
    employee_id: str
    first_name: str
    last_name: str
    email: EmailStr
    phone: Optional[str] = None
    position: Optional[str] = None
    department: Optional[str] = None
    hire_date: Optional[date] = None
    salary: Optional[Decimal] = None
    status: str = "Active"


class StaffUpdateIn(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    position: Optional[str] = None
    department: Optional[str] = None
    salary: Optional[Decimal] = None
    status: Optional[str] = None


class LoanIn(BaseModel):
    member_id: int
    copy_id: int
    staff_id: Optional[int] = None
    loan_date: Optional[date] = None
    # defaults to loan_date + LOAN_PERIOD_DAYS
    due_date: Optional[date] = None
    notes: Optional[str] = None
    # also lend a Reserved copy; holds do not record a member, so any member may pick one up
    fulfil_reservation: bool = False
