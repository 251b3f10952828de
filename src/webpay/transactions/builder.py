"""Transaction builder for preparing unsigned payment transactions.

This service builds unsigned Solana transactions for wallet-side signing.
NO signing, account lookups or broadcasting happen here: the caller
supplies the recent blockhash and, optionally, the set of token accounts
known to exist on chain.
"""

import base64
import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional, Union

from solders.hash import Hash, ParseHashError
from solders.instruction import Instruction
from solders.message import Message
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction
from spl.memo.constants import MEMO_PROGRAM_ID
from spl.memo.instructions import create_memo
from spl.memo.models import MemoParams
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import get_associated_token_address
from spl.token.instructions import transfer as token_transfer
from spl.token.models import TransferParams as TokenTransferParams

from webpay.encoding import b58encode
from webpay.errors import (
    InactiveTokenAccount,
    InsufficientBalance,
    InvalidAddress,
    InvalidAmount,
    MissingTokenAccount,
)
from webpay.transactions.contracts import (
    InstructionSummary,
    OrderData,
    TokenMetadata,
    TransactionRequest,
    UnsignedTransaction,
)

logger = logging.getLogger(__name__)


def to_base_units(amount: Union[str, int, Decimal], decimals: int) -> int:
    """Scale a display amount to integer base units.

    Args:
        amount: Display amount, e.g. "1.5"
        decimals: Token decimals (9 for SOL)

    Raises:
        InvalidAmount: Unparsable, negative, or finer than the token allows
    """
    if isinstance(amount, (bool, float)):
        raise InvalidAmount(f"Amount must be a string, int or Decimal, got {type(amount).__name__}")
    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation as e:
        raise InvalidAmount(f"Invalid amount: {amount!r}") from e

    if not value.is_finite() or value < 0:
        raise InvalidAmount(f"Invalid amount: {amount!r}")

    scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise InvalidAmount(f"Amount {amount} has more than {decimals} decimal places")
    return int(scaled)


def memo_for_order(order_id: str) -> str:
    """Memo text the merchant side uses to match a payment to its order."""
    return json.dumps({"webpay": {"orderId": order_id}}, separators=(",", ":"))


def _parse_pubkey(value: str, field: str) -> Pubkey:
    try:
        return Pubkey.from_string(value)
    except (ValueError, TypeError) as e:
        raise InvalidAddress(f"Invalid {field}: {value!r}") from e


def _validate_amount(amount) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount(
            f"Amount must be an integer number of base units, got {amount!r}"
        )
    if amount <= 0:
        raise InvalidAmount(f"Amount must be positive, got {amount}")
    return amount


class TransactionBuilder:
    """Builds unsigned payment transactions for wallet-side signing.

    This service NEVER:
    - Accesses private keys
    - Signs transactions
    - Contacts the network

    Errors are caller contract violations and are not retried.
    """

    def build(
        self,
        request: TransactionRequest,
        recent_blockhash: str,
        existing_accounts: Optional[Iterable[str]] = None,
        sender_balance: Optional[int] = None,
        recipient_account_state: Optional[str] = None,
        fee_lamports: int = 0,
    ) -> UnsignedTransaction:
        """Build an unsigned SOL or SPL token transfer tagged with the order memo.

        Args:
            request: Normalized transfer request
            recent_blockhash: Base58 blockhash supplied by the caller
            existing_accounts: Addresses known to exist on chain. When given,
                token accounts outside this set raise MissingTokenAccount.
            sender_balance: Known sender balance in base units (lamports for
                SOL, the source token account amount otherwise)
            recipient_account_state: Parsed state of the recipient token
                account, e.g. "initialized" or "frozen"
            fee_lamports: Network fee added to a SOL transfer's requirement

        Raises:
            InvalidAmount: Zero or non-integer amount
            InvalidAddress: Unparsable payer, recipient or blockhash
            MissingTokenAccount: Token account could not be resolved
            InsufficientBalance: sender_balance is below the requirement
            InactiveTokenAccount: Recipient token account is not initialized
        """
        amount = _validate_amount(request.amount_base_units)
        payer = _parse_pubkey(request.from_address, "from_address")
        recipient = _parse_pubkey(request.to_address, "to_address")

        try:
            blockhash = Hash.from_string(recent_blockhash)
        except (ValueError, TypeError, ParseHashError) as e:
            raise InvalidAddress(f"Invalid recent blockhash: {recent_blockhash!r}") from e

        self.check_balance(request, amount, sender_balance, fee_lamports)

        if request.is_native:
            transfer_ix, summary = self._native_transfer(payer, recipient, amount)
        else:
            known = set(existing_accounts) if existing_accounts is not None else None
            transfer_ix, summary = self._token_transfer(request, payer, recipient, amount, known)
            if recipient_account_state is not None and recipient_account_state != "initialized":
                raise InactiveTokenAccount(summary.accounts[1], recipient_account_state)

        memo = memo_for_order(request.order_id)
        memo_ix = create_memo(
            MemoParams(program_id=MEMO_PROGRAM_ID, signer=payer, message=memo.encode("utf-8"))
        )

        message = Message.new_with_blockhash([transfer_ix, memo_ix], payer, blockhash)
        tx = Transaction.new_unsigned(message)
        raw = bytes(tx)

        logger.info(
            "Built %s transfer for order %s: %d base units to %s...",
            "SOL" if request.is_native else "token",
            request.order_id,
            amount,
            request.to_address[:8],
        )

        return UnsignedTransaction(
            fee_payer=str(payer),
            recent_blockhash=str(blockhash),
            order_id=request.order_id,
            memo=memo,
            is_native=request.is_native,
            amount_base_units=amount,
            instructions=[
                summary,
                InstructionSummary(
                    program_id=str(MEMO_PROGRAM_ID),
                    accounts=[str(payer)],
                    description=f"Memo {memo}",
                ),
            ],
            serialized_b58=b58encode(raw),
            serialized_b64=base64.b64encode(raw).decode("ascii"),
            transaction=tx,
            description=f"Pay order {request.order_id} to {request.to_address[:10]}...",
        )

    def _native_transfer(
        self, payer: Pubkey, recipient: Pubkey, lamports: int
    ) -> tuple[Instruction, InstructionSummary]:
        ix = transfer(TransferParams(from_pubkey=payer, to_pubkey=recipient, lamports=lamports))
        summary = InstructionSummary(
            program_id=str(ix.program_id),
            accounts=[str(payer), str(recipient)],
            description=f"Transfer {lamports} lamports",
        )
        return ix, summary

    def _token_transfer(
        self,
        request: TransactionRequest,
        payer: Pubkey,
        recipient: Pubkey,
        amount: int,
        known: Optional[set[str]],
    ) -> tuple[Instruction, InstructionSummary]:
        source = self.resolve_token_account(
            "sender", payer, request.token_mint, request.source_token_account, known
        )
        dest = self.resolve_token_account(
            "recipient", recipient, request.token_mint, request.destination_token_account, known
        )

        ix = token_transfer(
            TokenTransferParams(
                program_id=TOKEN_PROGRAM_ID,
                source=source,
                dest=dest,
                owner=payer,
                amount=amount,
            )
        )
        summary = InstructionSummary(
            program_id=str(TOKEN_PROGRAM_ID),
            accounts=[str(source), str(dest), str(payer)],
            description=f"Transfer {amount} base units of {request.token_mint}",
        )
        return ix, summary

    def check_balance(
        self,
        request: TransactionRequest,
        amount: int,
        sender_balance: Optional[int],
        fee_lamports: int = 0,
    ) -> None:
        if sender_balance is None:
            return
        if request.is_native:
            required, asset = amount + fee_lamports, "SOL"
        else:
            required, asset = amount, "token"
        if sender_balance < required:
            raise InsufficientBalance(required, sender_balance, asset)

    def resolve_token_account(
        self,
        role: str,
        owner: Pubkey,
        mint: str,
        supplied: Optional[str] = None,
        known: Optional[set[str]] = None,
    ) -> Pubkey:
        """Resolve the associated token account of ``owner`` for ``mint``.

        Uses the caller supplied address when given, otherwise derives it.
        """
        if supplied:
            try:
                account = Pubkey.from_string(supplied)
            except (ValueError, TypeError) as e:
                raise MissingTokenAccount(role, str(owner), mint, "invalid account address") from e
        else:
            try:
                mint_key = Pubkey.from_string(mint)
            except (ValueError, TypeError) as e:
                raise MissingTokenAccount(role, str(owner), mint, "invalid mint address") from e
            account = get_associated_token_address(owner, mint_key)

        if known is not None and str(account) not in known:
            raise MissingTokenAccount(role, str(owner), mint, f"{account} does not exist")
        return account

    def build_for_order(
        self,
        order: OrderData,
        token: TokenMetadata,
        payer_address: str,
        recent_blockhash: str,
        existing_accounts: Optional[Iterable[str]] = None,
    ) -> UnsignedTransaction:
        """Build a payment transaction from order and token metadata.

        Raises:
            InvalidAmount: If the order amount does not fit the token decimals
            MissingTokenAccount: If a non-native token has no mint address
        """
        if not token.is_native and not token.address:
            raise MissingTokenAccount("sender", payer_address, "", "token has no mint address")

        request = TransactionRequest(
            from_address=payer_address,
            to_address=order.merchant_address,
            amount_base_units=to_base_units(order.pay_token_amount, token.decimals),
            token_mint=None if token.is_native else token.address,
            order_id=order.order_id,
        )
        return self.build(request, recent_blockhash, existing_accounts)
