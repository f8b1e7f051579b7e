# Overview: Service-layer operations for document numbering; atomic sequence allocation.

from __future__ import annotations

from flask import current_app
from sqlalchemy import update

from ..errors import ValidationError
from ..extensions import db
from ..models import DocumentSequence
from ..time_utils import business_today


def _ensure_counter(document_type: str) -> None:
    """Create the counter row if missing; a concurrent creator is not an error."""
    dialect = db.session.get_bind().dialect.name
    if dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    elif dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    else:
        exists = db.session.query(DocumentSequence.id).filter_by(document_type=document_type).first()
        if exists is None:
            db.session.add(DocumentSequence(document_type=document_type, next_number=1))
            db.session.flush()
        return

    stmt = (
        insert(DocumentSequence)
        .values(document_type=document_type, next_number=1)
        .on_conflict_do_nothing(index_elements=["document_type"])
    )
    db.session.execute(stmt)


def allocate_number(document_type: str) -> int:
    """
    Atomically increment-and-read the counter for a document type.

    The UPDATE takes the row's write lock, so two concurrent callers can
    never read the same value.
    """
    if not document_type:
        raise ValidationError("document_type is required")

    _ensure_counter(document_type)
    db.session.execute(
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
    )
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type)
        .scalar()
    )
    return current - 1


def next_document_number(*, document_type: str, prefix: str, pad: int | None = None) -> str:
    """
    Allocate the next human-readable number for a document type.

    The increment joins the caller's transaction; if that transaction rolls
    back, the number is released with it.

    Format: {prefix}{YYYYMMDD}-{n:04d}, e.g. S20260117-0042
    """
    if pad is None:
        pad = current_app.config.get("DOCUMENT_NUMBER_PAD", 4)

    number = allocate_number(document_type)
    return f"{prefix}{business_today():%Y%m%d}-{number:0{pad}d}"
