"""Loan lifecycle: issue, return, renew, loss, and copy status transitions.

Every operation runs as one transaction. The copy row is re-read under
``SELECT ... FOR UPDATE`` before its status changes, and ``book_copies.version``
turns a lost update into ConcurrentModificationError, so one copy can never be
lent twice. Issuing also locks and bumps ``members.version``, so two issues to
the same member cannot both slip under its borrowing limit.
"""
import logging
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from db import settings, transaction
from errors import (
    BorrowingLimitError, CheckConstraintViolation, CopyNotAvailableError,
    ForeignKeyViolation, InvalidTransitionError, NotFoundError,
)
import models as M
import schemas as S

log = logging.getLogger(__name__)

# manual moves; Borrowed is entered through issue_loan and left through
# return_loan / mark_loan_lost
COPY_TRANSITIONS = {
    "Available": {"Reserved", "Maintenance", "Lost"},
    "Borrowed": {"Reserved"},
    "Reserved": {"Available", "Borrowed"},
    "Maintenance": {"Available"},
    "Lost": {"Available"},
}

RETURN_COPY_STATUSES = ("Available", "Maintenance")

CENT = Decimal("0.01")


def _locked(db: Session, model, pk):
    pk_col = model.__mapper__.primary_key[0]
    return db.scalar(
        select(model)
        .where(pk_col == pk)
        .with_for_update()
        .execution_options(populate_existing=True)
    )


def _locked_loan(db: Session, loan_id: int) -> M.Loan:
    loan = _locked(db, M.Loan, loan_id)
    if loan is None:
        raise NotFoundError(f"loan {loan_id} not found")
    return loan


def open_loan_for_copy(db: Session, copy_id: int) -> M.Loan | None:
    return db.scalar(
        select(M.Loan).where(
            M.Loan.copy_id == copy_id,
            M.Loan.return_date.is_(None),
            M.Loan.status.in_(M.OPEN_LOAN_STATUSES),
        )
    )


def open_loan_count(db: Session, member_id: int) -> int:
    return db.scalar(
        select(func.count())
        .select_from(M.Loan)
        .where(
            M.Loan.member_id == member_id,
            M.Loan.return_date.is_(None),
            M.Loan.status.in_(M.OPEN_LOAN_STATUSES),
        )
    )


def overdue_fine(due_date: date, returned_on: date) -> Decimal:
    """Per-day charge for every day past due_date; zero when on time."""
    days = (returned_on - due_date).days
    if days <= 0:
        return Decimal("0.00")
    return (Decimal(days) * Decimal(settings.FINE_PER_DAY)).quantize(CENT)


def issue_loan(db: Session, data: S.LoanIn) -> M.Loan:
    """Lend a copy: creates the Active loan and moves the copy to Borrowed."""
    with transaction(db):
        member = _locked(db, M.Member, data.member_id)
        if member is None:
            raise ForeignKeyViolation("fk_loans_member", f"members {data.member_id} does not exist", "loans")
        if data.staff_id is not None:
            staff = db.get(M.Staff, data.staff_id)
            if staff is None:
                raise ForeignKeyViolation("fk_loans_staff", f"staff {data.staff_id} does not exist", "loans")
            if staff.status != "Active":
                raise InvalidTransitionError(f"staff {staff.staff_id} is {staff.status}")

        copy = _locked(db, M.BookCopy, data.copy_id)
        if copy is None:
            raise ForeignKeyViolation("fk_loans_copy", f"book_copies {data.copy_id} does not exist", "loans")

        lendable = ("Available", "Reserved") if data.fulfil_reservation else ("Available",)
        if copy.status not in lendable:
            log.warning("copy %s not lendable (status=%s)", copy.copy_id, copy.status)
            raise CopyNotAvailableError(f"copy {copy.copy_id} is {copy.status}")
        if open_loan_for_copy(db, copy.copy_id) is not None:
            log.warning("copy %s already has an open loan", copy.copy_id)
            raise CopyNotAvailableError(f"copy {copy.copy_id} is still on loan")

        if member.status != "Active":
            raise InvalidTransitionError(f"member {member.member_id} is {member.status}")
        if open_loan_count(db, member.member_id) >= member.max_books_allowed:
            raise BorrowingLimitError(
                f"member {member.member_id} already has {member.max_books_allowed} books on loan"
            )

        loan_date = data.loan_date or date.today()
        loan = M.Loan(
            member_id=member.member_id,
            copy_id=copy.copy_id,
            staff_id=data.staff_id,
            loan_date=loan_date,
            due_date=data.due_date or loan_date + timedelta(days=settings.LOAN_PERIOD_DAYS),
            renewal_count=0,
            fine_amount=Decimal("0.00"),
            status="Active",
            notes=data.notes,
        )
        db.add(loan)
        copy.status = "Borrowed"
        # conflicts with any other issue to this member committed meanwhile
        member.version = member.version + 1

    db.refresh(loan)
    log.info("loan %s: copy %s -> member %s, due %s", loan.loan_id, loan.copy_id, loan.member_id, loan.due_date)
    return loan


def return_loan(db: Session, loan_id: int, return_date: date | None = None,
                copy_status: str = "Available") -> M.Loan:
    """Close a loan, charge any overdue fine and put the copy back.

    ``copy_status="Maintenance"`` sends a damaged copy for repair. A copy that
    was reserved while out stays Reserved for the waiting member; returning it
    damaged is refused until the hold is cancelled.
    """
    if copy_status not in RETURN_COPY_STATUSES:
        raise InvalidTransitionError(f"a returned copy cannot become {copy_status}")

    with transaction(db):
        loan = _locked_loan(db, loan_id)
        if not loan.is_open():
            raise InvalidTransitionError(f"loan {loan_id} is already {loan.status}")

        returned_on = return_date or date.today()
        loan.return_date = returned_on
        loan.status = "Returned"
        loan.fine_amount = overdue_fine(loan.due_date, returned_on)

        copy = _locked(db, M.BookCopy, loan.copy_id)
        if copy.status == "Reserved":
            if copy_status == "Maintenance":
                raise InvalidTransitionError(
                    f"copy {copy.copy_id} is reserved; cancel the hold before sending it to Maintenance"
                )
        else:
            copy.status = copy_status

    db.refresh(loan)
    log.info("loan %s returned on %s, fine %s", loan.loan_id, loan.return_date, loan.fine_amount)
    return loan


def renew_loan(db: Session, loan_id: int, today: date | None = None) -> M.Loan:
    """Push due_date out by one loan period; at most MAX_RENEWALS times."""
    today = today or date.today()
    with transaction(db):
        loan = _locked_loan(db, loan_id)
        if loan.status != "Active" or loan.return_date is not None:
            raise InvalidTransitionError(f"loan {loan_id} is {loan.status}")
        if loan.is_overdue(today):
            raise InvalidTransitionError(f"loan {loan_id} is overdue since {loan.due_date}")
        if loan.renewal_count >= M.MAX_RENEWALS:
            raise CheckConstraintViolation(
                "chk_renewal_count", f"loan {loan_id} already renewed {M.MAX_RENEWALS} times", "loans"
            )
        copy = _locked(db, M.BookCopy, loan.copy_id)
        if copy.status == "Reserved":
            raise InvalidTransitionError(f"copy {copy.copy_id} is reserved by another member")
        if loan.member.status != "Active":
            raise InvalidTransitionError(f"member {loan.member_id} is {loan.member.status}")

        loan.renewal_count += 1
        loan.due_date = loan.due_date + timedelta(days=settings.LOAN_PERIOD_DAYS)

    db.refresh(loan)
    log.info("loan %s renewed (%s), due %s", loan.loan_id, loan.renewal_count, loan.due_date)
    return loan


def mark_loan_lost(db: Session, loan_id: int) -> M.Loan:
    """Borrower lost the copy: loan and copy both become Lost, fine = copy price."""
    with transaction(db):
        loan = _locked_loan(db, loan_id)
        if not loan.is_open():
            raise InvalidTransitionError(f"loan {loan_id} is already {loan.status}")
        copy = _locked(db, M.BookCopy, loan.copy_id)
        loan.status = "Lost"
        if copy.price is not None:
            loan.fine_amount = Decimal(copy.price).quantize(CENT)
        copy.status = "Lost"

    db.refresh(loan)
    log.info("loan %s marked lost, fine %s", loan.loan_id, loan.fine_amount)
    return loan


def transition_copy(db: Session, copy_id: int, new_status: str) -> M.BookCopy:
    """Manual copy status change guarded by COPY_TRANSITIONS."""
    if new_status not in M.COPY_STATUSES:
        raise CheckConstraintViolation(
            "chk_book_copies_status", f"status must be one of {', '.join(M.COPY_STATUSES)}", "book_copies"
        )
    with transaction(db):
        copy = _locked(db, M.BookCopy, copy_id)
        if copy is None:
            raise NotFoundError(f"book_copies {copy_id} not found")
        if new_status not in COPY_TRANSITIONS[copy.status]:
            raise InvalidTransitionError(f"copy {copy_id}: {copy.status} -> {new_status} not allowed")

        on_loan = open_loan_for_copy(db, copy_id) is not None
        # Reserved -> Borrowed only cancels a hold placed while the copy was out;
        # Reserved -> Available only when nobody still holds it
        if copy.status == "Reserved" and (new_status == "Borrowed") != on_loan:
            raise InvalidTransitionError(
                f"copy {copy_id}: {copy.status} -> {new_status} not allowed "
                f"({'on loan' if on_loan else 'not on loan'})"
            )
        old = copy.status
        copy.status = new_status

    db.refresh(copy)
    log.info("copy %s: %s -> %s", copy_id, old, new_status)
    return copy


def _overdue_clause(today: date):
    return (
        M.Loan.return_date.is_(None),
        M.Loan.status.in_(M.OPEN_LOAN_STATUSES),
        M.Loan.due_date < today,
    )


def list_overdue_loans(db: Session, today: date | None = None) -> list[M.Loan]:
    """Open loans past their due date, derived from dates rather than status."""
    today = today or date.today()
    q = select(M.Loan).where(*_overdue_clause(today)).order_by(M.Loan.due_date, M.Loan.loan_id)
    return list(db.scalars(q).all())


def reconcile_overdue(db: Session, today: date | None = None) -> int:
    """Recompute the stored Active/Overdue status of open loans; returns rows changed."""
    today = today or date.today()
    changed = 0
    with transaction(db):
        q = select(M.Loan).where(
            M.Loan.return_date.is_(None),
            M.Loan.status.in_(M.OPEN_LOAN_STATUSES),
        ).with_for_update()
        for loan in db.scalars(q):
            status = "Overdue" if loan.is_overdue(today) else "Active"
            if loan.status != status:
                loan.status = status
                changed += 1
    log.info("overdue reconciliation on %s: %s loan(s) updated", today, changed)
    return changed
