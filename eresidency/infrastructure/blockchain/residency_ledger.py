"""
Residency NFT ledger.

``mint`` for the minting coordinator. Reconciliation uses ``transaction_status``
(what became of a broadcast transaction) and ``find_token`` (ownership lookup
by wallet).
Web3 calls are blocking and run in worker threads.
"""

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel, Field
from web3 import Web3

from eresidency.core.config import settings
from eresidency.core.exceptions import LedgerRejectedError
from eresidency.core.logging import get_logger
from eresidency.infrastructure.blockchain.contract_client import ContractClient

logger = get_logger(__name__)

RESIDENCY_NFT_ABI: List[Dict[str, Any]] = [
    {
        "inputs": [
            {"internalType": "address", "name": "to", "type": "address"},
            {"internalType": "string", "name": "name", "type": "string"},
            {"internalType": "string", "name": "citizenshipCountry", "type": "string"},
            {"internalType": "string", "name": "eResidencyId", "type": "string"},
            {"internalType": "string", "name": "tokenUri", "type": "string"},
        ],
        "name": "mintNFT",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "address", "name": "owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "uint256", "name": "tokenId", "type": "uint256"}],
        "name": "ownerOf",
        "outputs": [{"internalType": "address", "name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "internalType": "address", "name": "to", "type": "address"},
            {"indexed": True, "internalType": "uint256", "name": "tokenId", "type": "uint256"},
            {"indexed": False, "internalType": "string", "name": "eResidencyId", "type": "string"},
        ],
        "name": "ResidencyMinted",
        "type": "event",
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "internalType": "address", "name": "from", "type": "address"},
            {"indexed": True, "internalType": "address", "name": "to", "type": "address"},
            {"indexed": True, "internalType": "uint256", "name": "tokenId", "type": "uint256"},
        ],
        "name": "Transfer",
        "type": "event",
    },
]


class MintPayload(BaseModel):
    """Recipient data written on chain."""

    name: str = Field(..., description="Holder name")
    citizenship_country: str = Field(..., description="Citizenship country")
    e_residency_id: str = Field(..., description="e-Residency identifier")
    token_uri: str = Field(..., description="Metadata URI")


class LedgerMintResult(BaseModel):
    """Confirmed mint."""

    token_id: str = Field(..., description="Token ID")
    transaction_hash: str = Field(..., description="Transaction hash")
    contract_address: str = Field(..., description="Contract address")
    block_number: Optional[int] = Field(None, description="Block number")


class LedgerToken(BaseModel):
    """A residency token found on chain for a wallet."""

    token_id: Optional[str] = Field(None, description="Token ID, None if no event was found")
    transaction_hash: Optional[str] = Field(None, description="Mint transaction hash")
    contract_address: str = Field(..., description="Contract address")
    block_number: Optional[int] = Field(None, description="Block number")
    e_residency_id: Optional[str] = Field(None, description="e-Residency ID from the event")


class TransactionState(str, Enum):
    """What the node reports for a broadcast transaction."""

    PENDING = "pending"
    MINED = "mined"
    REVERTED = "reverted"
    UNKNOWN = "unknown"


class LedgerTransaction(BaseModel):
    """State of a broadcast mint transaction."""

    state: TransactionState = Field(..., description="Transaction state")
    token: Optional[LedgerToken] = Field(None, description="Minted token, set once mined")


def token_id_from_receipt(client: ContractClient, receipt: Dict[str, Any]) -> str:
    """Token ID from ResidencyMinted or Transfer events, else ``tx-<block>-<index>``."""
    for event_name in ("ResidencyMinted", "Transfer"):
        events = client.decode_receipt_events(event_name, receipt)
        if events:
            return str(events[0]["args"]["tokenId"])
    return f"tx-{receipt.get('blockNumber')}-{receipt.get('transactionIndex')}"


class ResidencyLedger:
    """Residency NFT contract on the active chain."""

    def __init__(self):
        self._client: Optional[ContractClient] = None

    def _get_client(self) -> ContractClient:
        if self._client is None:
            if not settings.RESIDENCY_NFT_CONTRACT_ADDRESS:
                raise LedgerRejectedError("RESIDENCY_NFT_CONTRACT_ADDRESS not configured")
            self._client = ContractClient(
                settings.RESIDENCY_NFT_CONTRACT_ADDRESS, RESIDENCY_NFT_ABI
            )
        return self._client

    async def mint(
        self,
        payload: MintPayload,
        wallet_address: str,
        on_broadcast: Optional[Callable[[str], Awaitable[None]]] = None,
    ) -> LedgerMintResult:
        """
        Mint a residency token to ``wallet_address``.

        Args:
            payload: On-chain recipient data
            wallet_address: Recipient wallet
            on_broadcast: Awaited with the transaction hash once it is broadcast

        Returns:
            LedgerMintResult: Confirmed mint

        Raises:
            LedgerRejectedError: Nothing was minted
            LedgerTimeoutError: Broadcast, outcome unknown
        """
        client = self._get_client()
        recipient = Web3.to_checksum_address(wallet_address)

        tx_hash = await asyncio.to_thread(
            client.send_transaction,
            "mintNFT",
            [
                recipient,
                payload.name,
                payload.citizenship_country,
                payload.e_residency_id,
                payload.token_uri,
            ],
        )
        if on_broadcast:
            await on_broadcast(tx_hash)

        receipt = await asyncio.to_thread(client.wait_for_receipt, tx_hash)
        token_id = token_id_from_receipt(client, receipt)

        return LedgerMintResult(
            token_id=token_id,
            transaction_hash=tx_hash,
            contract_address=client.contract_address,
            block_number=receipt.get("blockNumber"),
        )

    async def find_token(self, wallet_address: str) -> Optional[LedgerToken]:
        """
        Ground truth for reconciliation: the residency token held by a wallet.

        Returns:
            LedgerToken, or None if the wallet holds no token

        Raises:
            ExternalServiceError: If the chain cannot be queried
        """
        client = self._get_client()
        owner = Web3.to_checksum_address(wallet_address)

        balance = await asyncio.to_thread(client.call_function, "balanceOf", [owner])
        if not balance:
            return None

        events = await asyncio.to_thread(
            client.get_events,
            "ResidencyMinted",
            {"to": owner},
            settings.RESIDENCY_NFT_DEPLOY_BLOCK,
        )
        events = [event for event in events if event["args"]["to"] == owner]
        if not events:
            events = await asyncio.to_thread(
                client.get_events,
                "Transfer",
                {"to": owner},
                settings.RESIDENCY_NFT_DEPLOY_BLOCK,
            )
            events = [event for event in events if event["args"]["to"] == owner]

        if not events:
            logger.warning(f"Wallet {owner} holds a token but no mint event was found")
            return LedgerToken(contract_address=client.contract_address)

        latest = events[-1]
        return LedgerToken(
            token_id=str(latest["args"]["tokenId"]),
            transaction_hash=Web3.to_hex(latest["transactionHash"]),
            contract_address=client.contract_address,
            block_number=latest.get("blockNumber"),
            e_residency_id=latest["args"].get("eResidencyId"),
        )


    async def transaction_status(self, transaction_hash: str) -> LedgerTransaction:
        """
        Look up a broadcast mint transaction.

        UNKNOWN means the node has neither a receipt nor a mempool entry; the
        transaction may have been dropped or may not have propagated yet.

        Raises:
            ExternalServiceError: If the chain cannot be queried
        """
        client = self._get_client()

        receipt = await asyncio.to_thread(client.get_receipt, transaction_hash)
        if receipt is None:
            known = await asyncio.to_thread(client.is_transaction_known, transaction_hash)
            state = TransactionState.PENDING if known else TransactionState.UNKNOWN
            return LedgerTransaction(state=state)

        if receipt.get("status") == 0:
            return LedgerTransaction(state=TransactionState.REVERTED)

        return LedgerTransaction(
            state=TransactionState.MINED,
            token=LedgerToken(
                token_id=token_id_from_receipt(client, receipt),
                transaction_hash=transaction_hash,
                contract_address=client.contract_address,
                block_number=receipt.get("blockNumber"),
            ),
        )

# Global ledger instance
residency_ledger = ResidencyLedger()
