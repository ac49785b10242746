# Overview: Atomic document numbering for invoices, lending entries, and deposits.

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import DocumentSequence
from ..time_utils import utcnow


def next_document_number(*, document_type: str, prefix: str, pad: int = 4) -> str:
    """
    Allocate the next number for document_type inside the caller's transaction.

    The counter row is bumped with a single UPDATE so two concurrent writers can
    never read the same value; the first allocation creates the row.
    """
    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
    )
    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(document_type=document_type)
            .scalar()
        )
        next_num = current - 1
    else:
        db.session.add(DocumentSequence(document_type=document_type, next_number=2))
        db.session.flush()
        next_num = 1

    return f"{prefix}-{next_num:0{pad}d}"


def next_invoice_number() -> str:
    year = utcnow().year
    return next_document_number(document_type=f"INV-{year}", prefix=f"INV-{year}", pad=6)


def next_lending_number() -> str:
    year = utcnow().year
    return next_document_number(document_type=f"LEND-{year}", prefix=f"LEND-{year}", pad=6)


def next_deposit_number() -> str:
    return next_document_number(document_type="DEP", prefix="DEP", pad=4)
