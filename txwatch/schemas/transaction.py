"""Transaction schemas."""
from datetime import datetime
from typing import Dict, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from txwatch.models.transaction import TxState


class TransactionCreate(BaseModel):
    """Schema for registering a transaction to monitor."""
    id: str = Field(
        ...,
        min_length=1,
        max_length=66,
        validation_alias=AliasChoices("id", "txid"),
        description="Transaction hash",
    )
    chain: str = Field(
        ...,
        min_length=1,
        max_length=100,
        validation_alias=AliasChoices("chain", "blockchain"),
        description="Name of a configured chain client",
    )
    metadata: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "0x5c504ed432cb51138bcf09aa5e8a410dd4a1e204ef84bfed1be16dfba1b22060",
                "chain": "mainnet",
                "metadata": {"order": "42"},
            }
        }
    )


class TransactionReview(BaseModel):
    """Schema for acknowledging a transaction outcome."""
    reviewed: bool = False


class TransactionFilter(BaseModel):
    """
    Equality filter over record fields; unset fields are not constrained.

    ``metadata`` matches records carrying every given key with the given
    value. Unknown fields are rejected.
    """
    id: Optional[str] = Field(default=None, validation_alias=AliasChoices("id", "txid"))
    chain: Optional[str] = Field(default=None, validation_alias=AliasChoices("chain", "blockchain"))
    metadata: Optional[Dict[str, str]] = None
    state: Optional[TxState] = None
    monitoring: Optional[bool] = None
    pending: Optional[bool] = None
    checks: Optional[int] = None
    success: Optional[bool] = None
    reviewed: Optional[bool] = None
    error: Optional[str] = None

    model_config = ConfigDict(extra="forbid")

    def criteria(self) -> Dict[str, object]:
        """Fields the caller actually constrained."""
        return self.model_dump(exclude_unset=True, exclude_none=True)


class TransactionResponse(BaseModel):
    """Schema for a stored transaction record."""
    id: str
    chain: str
    metadata: Dict[str, str] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("tx_metadata", "metadata"),
    )
    state: TxState
    monitoring: bool
    pending: bool
    checks: int
    success: bool
    reviewed: bool
    error: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
