"""
Contract Client for smart contract interactions.
Handles Web3 contract calls, transactions and event logs.

Transaction failures are classified: anything that happens before the
transaction reaches the network raises LedgerRejectedError, a broadcast
transaction without a receipt raises LedgerTimeoutError.
"""

from typing import Any, Dict, List, Optional

from web3 import Web3
from web3.contract import Contract
from web3.exceptions import ContractLogicError, TimeExhausted, TransactionNotFound, Web3RPCError
from web3.logs import DISCARD

from eresidency.core.config import settings
from eresidency.core.exceptions import (
    ExternalServiceError,
    InsufficientFundsError,
    LedgerRejectedError,
    LedgerTimeoutError,
)
from eresidency.core.logging import get_logger, log_blockchain_transaction

logger = get_logger(__name__)


def _is_insufficient_funds(error: Exception) -> bool:
    return "insufficient funds" in str(error).lower()


class ContractClient:
    """Client for interacting with smart contracts."""

    def __init__(self, contract_address: str, abi: List[Dict], rpc_url: Optional[str] = None):
        """
        Initialize contract client.

        Args:
            contract_address: Contract address
            abi: Contract ABI
            rpc_url: RPC endpoint, defaults to EVM_RPC_URL
        """
        self.contract_address = Web3.to_checksum_address(contract_address)
        self.abi = abi

        rpc_url = rpc_url or settings.EVM_RPC_URL
        self.w3 = Web3(
            Web3.HTTPProvider(
                rpc_url, request_kwargs={"timeout": settings.EVM_RPC_TIMEOUT_SECONDS}
            )
        )
        logger.info(f"Using RPC: {rpc_url}")

        self.contract: Contract = self.w3.eth.contract(
            address=self.contract_address, abi=self.abi
        )

        logger.info(f"Contract client initialized for {self.contract_address}")

    def send_transaction(
        self,
        function_name: str,
        args: List[Any],
        gas_limit: Optional[int] = None,
    ) -> str:
        """
        Sign and broadcast a contract transaction.

        Args:
            function_name: Name of the contract function to call
            args: List of arguments for the function
            gas_limit: Gas limit for the transaction

        Returns:
            str: 0x-prefixed transaction hash

        Raises:
            LedgerRejectedError: If the transaction was not broadcast
            LedgerTimeoutError: If the broadcast failed ambiguously
        """
        if not settings.EVM_PRIVATE_KEY:
            raise LedgerRejectedError("EVM_PRIVATE_KEY not configured")

        contract_function = getattr(self.contract.functions, function_name)

        try:
            account = self.w3.eth.account.from_key(settings.EVM_PRIVATE_KEY)
            from_address = account.address

            logger.info(f"Sending transaction: {function_name} from {from_address}")

            nonce = self.w3.eth.get_transaction_count(from_address, "pending")

            if not gas_limit:
                # Add 20% buffer; a revert here means the mint would fail
                gas_limit = int(
                    contract_function(*args).estimate_gas({"from": from_address}) * 1.2
                )

            transaction = contract_function(*args).build_transaction(
                {
                    "from": from_address,
                    "nonce": nonce,
                    "gas": gas_limit,
                    "gasPrice": self.w3.eth.gas_price,
                    "chainId": settings.EVM_CHAIN_ID,
                }
            )

            signed_txn = self.w3.eth.account.sign_transaction(
                transaction, settings.EVM_PRIVATE_KEY
            )
        except ContractLogicError as e:
            logger.warning(f"Contract rejected {function_name}: {e}")
            raise LedgerRejectedError(f"Contract rejected {function_name}: {e}")
        except Exception as e:
            if _is_insufficient_funds(e):
                raise InsufficientFundsError({"method": function_name})
            logger.error(f"Error preparing transaction: {e}", exc_info=True)
            raise LedgerRejectedError(f"Failed to prepare {function_name}: {e}")

        tx_hash = Web3.to_hex(signed_txn.hash)
        try:
            self.w3.eth.send_raw_transaction(signed_txn.raw_transaction)
        except Web3RPCError as e:
            # The node answered and refused the transaction
            if _is_insufficient_funds(e):
                raise InsufficientFundsError({"method": function_name})
            raise LedgerRejectedError(f"Node rejected {function_name}: {e}")
        except Exception as e:
            logger.error(f"Broadcast of {tx_hash} failed ambiguously: {e}")
            raise LedgerTimeoutError(
                "Transaction broadcast outcome unknown", transaction_hash=tx_hash
            )

        log_blockchain_transaction(
            tx_hash,
            settings.EVM_CHAIN_ID,
            contract_address=self.contract_address,
            method=function_name,
        )
        return tx_hash

    def wait_for_receipt(self, tx_hash: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Wait for a mined receipt.

        Raises:
            LedgerTimeoutError: If no receipt arrives in time
            LedgerRejectedError: If the transaction reverted
        """
        try:
            receipt = self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=timeout or settings.MINT_RECEIPT_TIMEOUT_SECONDS
            )
        except TimeExhausted:
            raise LedgerTimeoutError(
                "Transaction receipt not available", transaction_hash=tx_hash
            )
        except Exception as e:
            logger.error(f"Error waiting for receipt {tx_hash}: {e}")
            raise LedgerTimeoutError(
                "Transaction receipt not available", transaction_hash=tx_hash
            )

        if receipt.get("status") == 0:
            raise LedgerRejectedError(
                f"Transaction reverted: {tx_hash}", {"transaction_hash": tx_hash}
            )

        logger.info(f"Transaction confirmed: {tx_hash} in block {receipt.get('blockNumber')}")
        return dict(receipt)

    def call_function(self, function_name: str, args: List[Any]) -> Any:
        """
        Call a read-only contract function.

        Args:
            function_name: Name of the contract function to call
            args: List of arguments for the function

        Returns:
            Function return value

        Raises:
            ExternalServiceError: If the call fails
        """
        try:
            contract_function = getattr(self.contract.functions, function_name)
            result = contract_function(*args).call()
        except Exception as e:
            logger.error(f"Error calling function {function_name}: {e}")
            raise ExternalServiceError(f"Contract call failed: {function_name}")

        logger.info(f"Called function: {function_name}({args}) = {result}")
        return result

    def decode_receipt_events(self, event_name: str, receipt: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Events of one type emitted in a receipt, undecodable logs skipped."""
        event = getattr(self.contract.events, event_name)()
        return [dict(log) for log in event.process_receipt(receipt, errors=DISCARD)]

    def get_events(
        self,
        event_name: str,
        argument_filters: Optional[Dict[str, Any]] = None,
        from_block: int = 0,
    ) -> List[Dict[str, Any]]:
        """
        Fetch historical events.

        Raises:
            ExternalServiceError: If the node query fails
        """
        event = getattr(self.contract.events, event_name)()
        try:
            logs = event.get_logs(
                argument_filters=argument_filters or {}, from_block=from_block
            )
        except Exception as e:
            logger.error(f"Error fetching {event_name} logs: {e}")
            raise ExternalServiceError(f"Failed to fetch {event_name} events")
        return [dict(log) for log in logs]

    def get_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """
        Receipt of a transaction, without waiting for it to be mined.

        Returns:
            The receipt, or None if the transaction is not mined yet

        Raises:
            ExternalServiceError: If the node query fails
        """
        try:
            receipt = self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
        except Exception as e:
            logger.error(f"Error fetching receipt {tx_hash}: {e}")
            raise ExternalServiceError("Failed to fetch transaction receipt")
        return dict(receipt)

    def is_transaction_known(self, tx_hash: str) -> bool:
        """Whether the node knows the transaction, mined or still in its mempool."""
        try:
            self.w3.eth.get_transaction(tx_hash)
        except TransactionNotFound:
            return False
        except Exception as e:
            logger.error(f"Error fetching transaction {tx_hash}: {e}")
            raise ExternalServiceError("Failed to fetch transaction")
        return True
