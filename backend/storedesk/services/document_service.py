# Overview: Invoice number allocation.

from __future__ import annotations

import re

from ..extensions import db
from ..models import DocumentSequence, Invoice
from .concurrency import begin_serialized, lock_for_update

INVOICE_DOCUMENT_TYPE = "INVOICE"
INVOICE_PREFIX = "INV"
INVOICE_PAD = 6

INVOICE_NUMBER_RE = re.compile(r"^INV-([0-9]+)$")


def format_invoice_number(number: int) -> str:
    return f"{INVOICE_PREFIX}-{number:0{INVOICE_PAD}d}"


def parse_invoice_number(value: str | None) -> int | None:
    """Numeric suffix of an "INV-<digits>" number; None for anything else."""
    if not value:
        return None
    match = INVOICE_NUMBER_RE.match(value.strip())
    if not match:
        return None
    return int(match.group(1))


def max_invoice_suffix() -> int:
    """Highest numeric suffix among existing INV-<digits> numbers (0 if none)."""
    highest = 0
    numbers = db.session.query(Invoice.invoice_number).filter(
        Invoice.invoice_number.like(f"{INVOICE_PREFIX}-%")
    )
    for (number,) in numbers:
        suffix = parse_invoice_number(number)
        if suffix is not None and suffix > highest:
            highest = suffix
    return highest


def _lock_sequence() -> DocumentSequence:
    seq = lock_for_update(
        db.session.query(DocumentSequence).filter_by(document_type=INVOICE_DOCUMENT_TYPE)
    ).first()
    if seq is None:
        seq = DocumentSequence(document_type=INVOICE_DOCUMENT_TYPE, next_number=1)
        db.session.add(seq)
        db.session.flush()
    return seq


def next_invoice_number() -> str:
    """
    Allocate the next INV-NNNNNN number inside the caller's transaction.

    The number is max(existing suffix) + 1. Holding the sequence row lock
    (BEGIN IMMEDIATE on SQLite) keeps two writers from computing the same
    value; the unique constraint on invoice_number is the backstop. The
    sequence row also records the last number handed out.
    """
    begin_serialized()
    seq = _lock_sequence()

    next_num = max_invoice_suffix() + 1

    seq.next_number = next_num + 1
    db.session.flush()
    return format_invoice_number(next_num)

