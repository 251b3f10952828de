"""Transaction contracts for wallet-signed payments.

These contracts describe unsigned transactions that the external wallet
signs and broadcasts. NO signing or broadcasting happens in this package.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class OrderData(BaseModel):
    """Order fields consumed from the order service."""

    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field(..., alias="orderId", description="Merchant order identifier")
    merchant_address: str = Field(
        ..., alias="merchantAddress", description="Merchant wallet address (recipient)"
    )
    pay_token_amount: str = Field(
        ..., alias="payTokenAmount", description="Amount to pay in display units"
    )


class TokenMetadata(BaseModel):
    """Payment token fields consumed from the order service."""

    model_config = ConfigDict(populate_by_name=True)

    is_native: bool = Field(..., alias="isNative", description="True for SOL")
    address: Optional[str] = Field(None, description="SPL mint address (None for SOL)")
    decimals: int = Field(..., ge=0, le=18, description="Token decimals")


class TransactionRequest(BaseModel):
    """Normalized request for a payment transfer.

    ``amount_base_units`` is already scaled by the token decimals
    (lamports for SOL). ``token_mint`` is set iff the transfer is not SOL.
    """

    from_address: str = Field(..., description="Payer wallet address (fee payer)")
    to_address: str = Field(..., description="Recipient wallet address")
    amount_base_units: Any = Field(..., description="Amount in base units")
    token_mint: Optional[str] = Field(None, description="SPL mint for token transfers")
    order_id: str = Field(..., description="Order id recorded in the memo")

    # Optional pre-resolved associated token accounts
    source_token_account: Optional[str] = Field(None, description="Payer token account")
    destination_token_account: Optional[str] = Field(None, description="Recipient token account")

    @field_validator("token_mint")
    @classmethod
    def empty_mint_is_native(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    @property
    def is_native(self) -> bool:
        return self.token_mint is None


class InstructionSummary(BaseModel):
    """Readable view of one instruction."""

    program_id: str
    accounts: list[str] = Field(default_factory=list)
    description: str = ""


class UnsignedTransaction(BaseModel):
    """An unsigned transaction for the wallet to sign and send.

    The wallet is responsible for:
    1. Signing this transaction with the payer key
    2. Broadcasting the signed transaction to the network
    """

    fee_payer: str = Field(..., description="Fee payer address")
    recent_blockhash: str = Field(..., description="Recent blockhash the message is bound to")
    order_id: str = Field(..., description="Order id recorded in the memo")
    memo: str = Field(..., description="Memo text attached to the transaction")
    is_native: bool = Field(..., description="True for SOL transfers")
    amount_base_units: int = Field(..., description="Transferred amount in base units")
    instructions: list[InstructionSummary] = Field(default_factory=list)
    serialized_b58: str = Field(..., description="Serialized unsigned transaction (base58)")
    serialized_b64: str = Field(..., description="Serialized unsigned transaction (base64)")

    # solders.transaction.Transaction, kept out of dumps
    transaction: Any = Field(default=None, exclude=True, repr=False)

    # Additional context for callers
    description: Optional[str] = Field(None, description="Human-readable description")
