"""Read-only chain helpers that gather what the pure builder needs.

The builder never calls these itself; callers fetch the blockhash, the
existing token accounts, balances and account state first, then pass them
to TransactionBuilder.build().
"""

import logging
from typing import Iterable, Optional, Union

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.core import RPCException
from solders.message import Message
from solders.pubkey import Pubkey

from webpay.config import DEFAULT_NETWORK, get_settings
from webpay.transactions.contracts import UnsignedTransaction

logger = logging.getLogger(__name__)

# Used when the node cannot price the message (5000 lamports per signature)
DEFAULT_FEE_LAMPORTS = 5000


def explorer_url(signature: str, network: Optional[str] = None, host: Optional[str] = None) -> str:
    """Block explorer link for a transaction signature.

    Adds ``?cluster=<network>`` unless the network is mainnet-beta.
    """
    settings = get_settings()
    network = network or settings.solana_network
    host = host or settings.explorer_host
    suffix = "" if network == DEFAULT_NETWORK else f"?cluster={network}"
    return f"https://{host}/tx/{signature}{suffix}"


async def fetch_latest_blockhash(client: Optional[AsyncClient] = None) -> str:
    """Fetch a confirmed recent blockhash."""
    if client is None:
        async with AsyncClient(get_settings().solana_rpc_url) as rpc:
            return await fetch_latest_blockhash(rpc)

    resp = await client.get_latest_blockhash(commitment=Confirmed)
    blockhash = str(resp.value.blockhash)
    logger.debug(
        "Latest blockhash %s valid until height %s", blockhash, resp.value.last_valid_block_height
    )
    return blockhash


async def fetch_existing_accounts(
    addresses: Iterable[str],
    client: Optional[AsyncClient] = None,
) -> set[str]:
    """Return the subset of ``addresses`` that exist on chain."""
    addresses = list(addresses)
    if not addresses:
        return set()

    if client is None:
        async with AsyncClient(get_settings().solana_rpc_url) as rpc:
            return await fetch_existing_accounts(addresses, rpc)

    keys = [Pubkey.from_string(a) for a in addresses]
    resp = await client.get_multiple_accounts(keys, commitment=Confirmed)
    existing = {addr for addr, info in zip(addresses, resp.value) if info is not None}

    missing = len(addresses) - len(existing)
    if missing:
        logger.info("%d of %d accounts not found on chain", missing, len(addresses))
    return existing


async def estimate_fee(
    transaction: Union[UnsignedTransaction, Message],
    client: Optional[AsyncClient] = None,
) -> int:
    """Network fee in lamports for a built transaction.

    Falls back to DEFAULT_FEE_LAMPORTS when the node cannot price it.
    """
    if client is None:
        async with AsyncClient(get_settings().solana_rpc_url) as rpc:
            return await estimate_fee(transaction, rpc)

    message = (
        transaction.transaction.message
        if isinstance(transaction, UnsignedTransaction)
        else transaction
    )
    try:
        resp = await client.get_fee_for_message(message, commitment=Confirmed)
    except Exception as e:
        logger.warning("Fee estimation failed, using default: %s", e)
        return DEFAULT_FEE_LAMPORTS

    if not resp.value:
        return DEFAULT_FEE_LAMPORTS
    return resp.value


async def fetch_sol_balance(address: str, client: Optional[AsyncClient] = None) -> int:
    """Lamport balance of a wallet address."""
    if client is None:
        async with AsyncClient(get_settings().solana_rpc_url) as rpc:
            return await fetch_sol_balance(address, rpc)

    resp = await client.get_balance(Pubkey.from_string(address), commitment=Confirmed)
    return resp.value


async def fetch_token_balance(
    token_account: str,
    client: Optional[AsyncClient] = None,
) -> Optional[int]:
    """Base-unit balance of a token account, or None if it does not exist."""
    if client is None:
        async with AsyncClient(get_settings().solana_rpc_url) as rpc:
            return await fetch_token_balance(token_account, rpc)

    try:
        resp = await client.get_token_account_balance(
            Pubkey.from_string(token_account), commitment=Confirmed
        )
    except RPCException as e:
        logger.info("Token account %s has no balance: %s", token_account, e)
        return None
    return int(resp.value.amount)


async def fetch_token_account_state(
    token_account: str,
    client: Optional[AsyncClient] = None,
) -> Optional[str]:
    """Parsed state ("initialized", "frozen") of a token account.

    None when the account is missing or not owned by the token program.
    """
    if client is None:
        async with AsyncClient(get_settings().solana_rpc_url) as rpc:
            return await fetch_token_account_state(token_account, rpc)

    resp = await client.get_account_info_json_parsed(
        Pubkey.from_string(token_account), commitment=Confirmed
    )
    account = resp.value
    if account is None:
        return None

    data = account.data
    if getattr(data, "program", None) != "spl-token":
        return None
    return data.parsed.get("info", {}).get("state")
