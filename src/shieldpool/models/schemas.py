"""Pydantic data models for persisted ledger state and operation receipts."""

from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

HEX64_PATTERN = r"^[0-9a-f]{64}$"
DECIMAL_PATTERN = r"^[0-9]+$"


class OperationKind(str, Enum):
    """Shielded operation enumeration."""
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"


class CommitmentRecordModel(BaseModel):
    """Serialized CommitmentRecord (camelCase keys, decimal-string field elements)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    commitment: str = Field(..., pattern=DECIMAL_PATTERN, description="Commitment (decimal)")
    amount: str = Field(..., pattern=DECIMAL_PATTERN, description="Committed amount (decimal)")
    owner: str = Field(..., pattern=DECIMAL_PATTERN, description="Owner identifier (decimal)")
    pool_id: str = Field("0", alias="poolId", pattern=DECIMAL_PATTERN)
    blinding: str = Field(..., pattern=DECIMAL_PATTERN, description="Blinding factor (decimal)")
    nullifier_secret: str = Field(..., alias="nullifierSecret", pattern=DECIMAL_PATTERN)
    leaf_index: int = Field(..., alias="leafIndex", ge=0, description="Slot in the Merkle tree")
    spent: bool = False
    tx_ref: Optional[str] = Field(None, alias="txRef")
    timestamp: int = Field(0, ge=0, description="Creation time (ms since epoch)")


class LedgerStateModel(BaseModel):
    """Top-level export document."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    commitments: List[Tuple[str, CommitmentRecordModel]]
    nullifier_secrets: List[Tuple[str, str]] = Field(..., alias="nullifierSecrets")
    spend_nonces: List[Tuple[str, int]] = Field(default_factory=list, alias="spendNonces")
    revealed_nullifiers: List[str] = Field(default_factory=list, alias="revealedNullifiers")
    last_confirmed_root: Optional[str] = Field(None, alias="lastConfirmedRoot")
    tree_depth: Optional[int] = Field(None, alias="treeDepth", ge=1)
    leaf_count: Optional[int] = Field(None, alias="leafCount", ge=0)

    @field_validator("commitments")
    @classmethod
    def _check_commitment_keys(cls, value):
        for key, _ in value:
            _require_hex64(key)
        return value

    @field_validator("nullifier_secrets")
    @classmethod
    def _check_secret_entries(cls, value):
        for key, secret in value:
            _require_hex64(key)
            if not secret.isdigit():
                raise ValueError(f"nullifier secret for {key} is not a decimal string")
        return value

    @field_validator("spend_nonces")
    @classmethod
    def _check_nonce_entries(cls, value):
        for key, nonce in value:
            _require_hex64(key)
            if nonce < 0:
                raise ValueError(f"negative nonce for {key}")
        return value

    @field_validator("revealed_nullifiers")
    @classmethod
    def _check_nullifiers(cls, value):
        for key in value:
            _require_hex64(key)
        return value

    @field_validator("last_confirmed_root")
    @classmethod
    def _check_root(cls, value):
        if value is not None and not value.isdigit():
            raise ValueError("lastConfirmedRoot must be a decimal string")
        return value


def _require_hex64(value: str) -> None:
    if len(value) != 64 or any(c not in "0123456789abcdef" for c in value):
        raise ValueError(f"expected 64 lower-case hex digits, got {value!r}")


class DepositReceipt(BaseModel):
    """Outcome of a confirmed deposit."""
    tx_id: str = Field(..., description="Ledger transaction id")
    commitment: str = Field(..., description="New commitment (hex)")
    leaf_index: int = Field(..., description="Slot the commitment occupies")
    old_root: str = Field(..., description="Root before the deposit (hex)")
    new_root: str = Field(..., description="Root after the deposit (hex)")
    amount: int = Field(..., gt=0)
    timestamp: datetime = Field(default_factory=datetime.now)

    model_config = ConfigDict(from_attributes=True)


class WithdrawalReceipt(BaseModel):
    """Outcome of a confirmed withdrawal."""
    tx_id: str = Field(..., description="Ledger transaction id")
    nullifier: str = Field(..., description="Revealed nullifier (hex)")
    spent_commitment: str = Field(..., description="Source commitment (hex)")
    change_commitment: Optional[str] = Field(None, description="Change commitment (hex)")
    amount: int = Field(..., gt=0)
    old_root: str = Field(..., description="Root before the withdrawal (hex)")
    new_root: str = Field(..., description="Root after the withdrawal (hex)")
    timestamp: datetime = Field(default_factory=datetime.now)

    model_config = ConfigDict(from_attributes=True)


class PoolStateResponse(BaseModel):
    """Summary of local pool state."""
    merkle_root: str = Field(..., description="Current Merkle root (hex)")
    tree_depth: int = Field(..., description="Merkle tree depth")
    leaf_count: int = Field(..., description="Number of inserted leaves")
    unspent_balance: int = Field(..., description="Sum of unspent commitments")
    unspent_count: int = Field(..., description="Number of unspent commitments")
    last_confirmed_root: Optional[str] = None
