# Overview: Service-layer operations for document numbering; encapsulates business logic and database work.

from __future__ import annotations

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence, Invoice

INVOICE_DOCUMENT_TYPE = "INVOICE"
INVOICE_PREFIX = "INV"


def format_invoice_number(number: int) -> str:
    return f"{INVOICE_PREFIX}-{number}"


def parse_invoice_number(value: str | None) -> int | None:
    """"INV-1042" -> 1042; anything else -> None."""
    if not value or not value.startswith(f"{INVOICE_PREFIX}-"):
        return None
    digits = value[len(INVOICE_PREFIX) + 1:]
    return int(digits) if digits.isdigit() else None


def _seed_number() -> int:
    """
    First number for a fresh sequence: INVOICE_NUMBER_START, or one past the
    highest invoice already on file (databases populated before the
    sequence row existed).
    """
    start = current_app.config["INVOICE_NUMBER_START"]
    highest = None
    for (number,) in db.session.query(Invoice.invoice_number).all():
        parsed = parse_invoice_number(number)
        if parsed is not None and (highest is None or parsed > highest):
            highest = parsed
    if highest is None:
        return start
    return max(start, highest + 1)


def _advance(document_type: str) -> int | None:
    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    db.session.flush()
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type)
        .scalar()
    )
    return current - 1


def next_invoice_number() -> str:
    """
    Allocate the next invoice number inside the caller's transaction.

    Uses an atomic UPDATE ... SET next_number = next_number + 1 so two
    committers can never read the same value. The number is only consumed
    if the caller commits; a rolled-back sale leaves no gap.
    """
    next_num = _advance(INVOICE_DOCUMENT_TYPE)
    if next_num is None:
        first = _seed_number()
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(document_type=INVOICE_DOCUMENT_TYPE, next_number=first + 1))
            next_num = first
        except IntegrityError:
            # Another transaction created the row first
            next_num = _advance(INVOICE_DOCUMENT_TYPE)
            if next_num is None:
                raise
    return format_invoice_number(next_num)
