"""Pydantic schemas for API validation."""
from txwatch.schemas.common import PageParams, DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from txwatch.schemas.transaction import (
    TransactionCreate,
    TransactionReview,
    TransactionFilter,
    TransactionResponse,
)

__all__ = [
    "PageParams",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    "TransactionCreate",
    "TransactionReview",
    "TransactionFilter",
    "TransactionResponse",
]
