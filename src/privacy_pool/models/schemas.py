"""Pydantic data models for the privacy pool HTTP service.

Field elements travel as strings (0x hex or decimal) and addresses as 0x hex;
both are parsed and checked on the way in.
"""

from datetime import datetime
from typing import Annotated, List, Optional

from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, Field

from privacy_pool.core.withdrawal import WithdrawalProof, WithdrawRequest
from privacy_pool.crypto.groth16 import FLAT_PROOF_LENGTH
from privacy_pool.utils.encoding import hex_to_bytes, hex_to_field, normalize_address
from privacy_pool.utils.hash import SNARK_SCALAR_FIELD


def _parse_field(value):
    if isinstance(value, str):
        value = hex_to_field(value)
    if isinstance(value, int) and not 0 <= value < SNARK_SCALAR_FIELD:
        raise ValueError("value is not a field element")
    return value


def _check_hex(value: str) -> str:
    if not value.startswith("0x"):
        raise ValueError("expected 0x-prefixed hex")
    hex_to_bytes(value)
    return value.lower()


def _parse_uint(value):
    return hex_to_field(value) if isinstance(value, str) else value


FieldElement = Annotated[int, BeforeValidator(_parse_field)]
Uint = Annotated[int, BeforeValidator(_parse_uint), Field(ge=0)]
Address = Annotated[str, AfterValidator(normalize_address)]
HexData = Annotated[str, AfterValidator(_check_hex)]


class DepositRequest(BaseModel):
    """Request model for a single deposit."""
    sender: Address = Field(..., description="Depositor address")
    raw_commitment: FieldElement = Field(..., description="H(secret) as hex or decimal")
    value: Uint = Field(default=0, description="Native value attached")


class DepositManyRequest(BaseModel):
    """Request model for a batched deposit."""
    sender: Address
    raw_commitments: List[FieldElement] = Field(..., min_length=1)
    value: Uint = 0


class DepositResponse(BaseModel):
    """Response model for deposit operations."""
    raw_commitment: str = Field(..., description="Raw commitment (hex)")
    commitment: str = Field(..., description="Inserted commitment (hex)")
    asset: str
    denomination: int
    index: int = Field(..., description="Index in the deposit tree")
    root: str = Field(..., description="Deposit tree root after the call (hex)")


class WithdrawalProofModel(BaseModel):
    """Public part of a withdrawal proof."""
    access_type: int = Field(..., ge=0, lt=2**8)
    bit_length: int = Field(..., ge=0, lt=2**24)
    subset_data: HexData = Field(default="0x", description="Subset data (hex)")
    flat_proof: List[Uint] = Field(..., min_length=FLAT_PROOF_LENGTH, max_length=FLAT_PROOF_LENGTH)
    root: FieldElement
    subset_root: FieldElement
    nullifier: FieldElement
    recipient: Address
    refund: Uint = 0
    relayer: Address
    fee: Uint = 0
    deadline: Uint = 0

    def to_proof(self) -> WithdrawalProof:
        return WithdrawalProof(**self.model_dump())


class WithdrawalRequest(BaseModel):
    """Request model for withdrawal operations."""
    caller: Address = Field(..., description="Submitting address, must match the proof relayer")
    proof: WithdrawalProofModel
    fee_receiver: Address = Field(..., description="Fee receiver, zero address waives the fee")
    value: Uint = Field(default=0, description="Native value attached (refund on token pools)")

    def to_request(self) -> WithdrawRequest:
        return WithdrawRequest(proof=self.proof.to_proof(), fee_receiver=self.fee_receiver)


class WithdrawalResponse(BaseModel):
    """Response model for withdrawal operations."""
    recipient: str
    relayer: str
    subset_root: str
    nullifier: str
    fee: int


class VerifyResponse(BaseModel):
    valid: bool


class PoolStateResponse(BaseModel):
    """Response model for pool state."""
    model_config = ConfigDict(from_attributes=True)

    address: Optional[str] = None
    asset: str
    denomination: int
    asset_metadata: str
    depth: int = Field(..., description="Deposit tree depth")
    capacity: int
    next_index: int = Field(..., description="Number of deposits")
    root: str = Field(..., description="Current deposit tree root (hex)")
    num_roots: int
    num_nullifiers: int = Field(..., description="Number of spent nullifiers")


class PathResponse(BaseModel):
    """Inclusion path of one deposit."""
    index: int
    leaf: str
    siblings: List[str]
    path_indices: List[int]
    root: str


class RootResponse(BaseModel):
    root: str
    known: bool


class NullifierResponse(BaseModel):
    nullifier: str
    spent: bool
    spent_at: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = Field(..., description="Service status")
    timestamp: str = Field(default_factory=lambda: datetime.now().isoformat())
    version: str = "0.1.0"


class ErrorResponse(BaseModel):
    """Error response."""
    error: str = Field(..., description="Error message")
    code: str = Field(..., description="Error code")
