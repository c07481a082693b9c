"""
Module: connectors.blockchain

On-chain settlement for the restock agent, plus the optional verifier the
supplier can use to check a presented payment proof.

Both talk to an EVM JSON-RPC endpoint through ``web3``'s async client and move
the chain's native currency only. The signing key never leaves
``SettlementExecutor``; only its public address is logged.
"""

import asyncio
import logging
from collections.abc import Callable
from decimal import Decimal

from aiohttp import ClientError, ClientTimeout
from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import TimeExhausted, TransactionNotFound, Web3Exception

from config.config import SettlementConfig
from models.enums import Currency
from models.errors import (
    ConfigurationMissing,
    ConfirmationTimeout,
    InsufficientFunds,
    NetworkUnreachable,
    PaymentVerificationFailed,
    TransactionRejected,
)
from models.procurement import Invoice
from models.settlement import ConnectionHandle, PendingTransaction, Receipt

logger = logging.getLogger(__name__)

Web3Factory = Callable[[str, float], AsyncWeb3]

DEFAULT_CONFIRMATION_TIMEOUT = 120.0

# Transport failures, including aiohttp's dropped connections and RPC 5xx responses.
_NETWORK_ERRORS = (OSError, asyncio.TimeoutError, ClientError)
_NODE_ERRORS = (Web3Exception, ValueError)


def default_web3_factory(endpoint: str, timeout: float) -> AsyncWeb3:
    return AsyncWeb3(AsyncHTTPProvider(endpoint, request_kwargs={"timeout": ClientTimeout(total=timeout)}))


class SettlementExecutor:
    """
    Signs and submits value transfers on behalf of the agent.

    Transfers are never retried: after an ambiguous failure the transfer may
    still be mined, and a second attempt could pay twice.
    """

    def __init__(self, config: SettlementConfig, *, web3_factory: Web3Factory = default_web3_factory):
        self.config = config
        self._web3_factory = web3_factory
        self._account: LocalAccount | None = None
        self._handle: ConnectionHandle | None = None

    def ensure_configured(self) -> LocalAccount:
        """Load the credential; raise ConfigurationMissing if it or the endpoint is absent."""
        self.config.require()
        if self._account is not None:
            return self._account
        try:
            account = Account.from_key(self.config.private_key)
        except (ValueError, TypeError) as exc:
            raise ConfigurationMissing("AGENT_PRIVATE_KEY is not a valid private key.") from exc
        logger.info(f"Agent wallet loaded: {account.address[:6]}...{account.address[-4:]}")
        self._account = account
        return account

    @property
    def address(self) -> str:
        return self.ensure_configured().address

    async def connect(self, endpoint: str | None = None) -> ConnectionHandle:
        """Open a client for ``endpoint`` and confirm it answers with a chain id."""
        self.ensure_configured()
        endpoint = endpoint or self.config.rpc_url
        if not endpoint:
            raise ConfigurationMissing("Missing settlement configuration: RPC_URL")
        client = self._web3_factory(endpoint, self.config.request_timeout_seconds)
        try:
            connected = await client.is_connected()
            chain_id = await client.eth.chain_id if connected else None
        except (*_NETWORK_ERRORS, *_NODE_ERRORS) as exc:
            raise NetworkUnreachable(f"RPC endpoint {endpoint} is unreachable: {exc}", settlement_related=True) from exc
        if not connected or chain_id is None:
            raise NetworkUnreachable(f"RPC endpoint {endpoint} did not identify a chain.", settlement_related=True)

        self._handle = ConnectionHandle(endpoint=endpoint, chain_id=int(chain_id), client=client)
        logger.info(f"Connected to chain {self._handle.chain_id} via {endpoint}")
        return self._handle

    async def _connection(self) -> ConnectionHandle:
        return self._handle or await self.connect()

    async def balance_of(self, address: str | None = None) -> int:
        """Balance in wei of ``address`` (the agent's own address by default)."""
        handle = await self._connection()
        target = address or self.address
        try:
            return int(await handle.client.eth.get_balance(target))
        except _NETWORK_ERRORS as exc:
            raise NetworkUnreachable(f"Balance query failed: {exc}", settlement_related=True) from exc
        except _NODE_ERRORS as exc:
            raise TransactionRejected(f"Balance query rejected: {exc}") from exc

    async def transfer(self, destination: str, amount: Decimal) -> PendingTransaction:
        """Sign and submit a native-currency transfer of ``amount`` (in ether units)."""
        handle = await self._connection()
        client = handle.client
        account = self.ensure_configured()
        sender = account.address

        try:
            to = Web3.to_checksum_address(destination)
        except (ValueError, TypeError) as exc:
            raise TransactionRejected(f"Invalid destination address {destination!r}.") from exc
        value = Web3.to_wei(amount, "ether")
        if value <= 0:
            raise TransactionRejected("Transfer amount must be positive.")

        try:
            gas_price = int(await client.eth.gas_price)
        except _NETWORK_ERRORS as exc:
            raise NetworkUnreachable(f"Gas price query failed: {exc}", settlement_related=True) from exc
        except _NODE_ERRORS as exc:
            raise TransactionRejected(f"Gas price query rejected: {exc}") from exc

        balance = await self.balance_of(sender)
        required = value + gas_price * self.config.gas_limit
        if balance == 0 or balance < required:
            raise InsufficientFunds(
                f"Balance {Web3.from_wei(balance, 'ether')} ETH cannot cover {amount} ETH plus gas."
            )

        try:
            nonce = await client.eth.get_transaction_count(sender, "pending")
            tx = {
                "to": to,
                "value": value,
                "gas": self.config.gas_limit,
                "gasPrice": gas_price,
                "nonce": nonce,
                "chainId": handle.chain_id,
            }
            signed = account.sign_transaction(tx)
            tx_hash = await client.eth.send_raw_transaction(signed.raw_transaction)
        except _NETWORK_ERRORS as exc:
            # The node may or may not have accepted the transaction; do not resend.
            raise NetworkUnreachable(f"Transfer submission failed: {exc}", settlement_related=True) from exc
        except _NODE_ERRORS as exc:
            raise TransactionRejected(f"Transfer rejected by node: {exc}") from exc

        pending = PendingTransaction(
            tx_hash=Web3.to_hex(tx_hash),
            sender=sender,
            destination=to,
            amount=amount,
            value_wei=value,
            nonce=nonce,
        )
        logger.info(f"Transfer of {amount} ETH to {to[:10]}... submitted: {pending.tx_hash}")
        return pending

    async def await_confirmation(self, pending: PendingTransaction, timeout: float | None = None) -> Receipt:
        """Suspend until ``pending`` is mined or ``timeout`` seconds pass."""
        handle = await self._connection()
        deadline = DEFAULT_CONFIRMATION_TIMEOUT if timeout is None else timeout
        try:
            raw = await handle.client.eth.wait_for_transaction_receipt(
                pending.tx_hash,
                timeout=deadline,
                poll_latency=self.config.poll_latency_seconds,
            )
        except TimeExhausted as exc:
            raise ConfirmationTimeout(f"Transaction {pending.tx_hash} not confirmed within {deadline:g}s.") from exc
        except _NETWORK_ERRORS as exc:
            raise NetworkUnreachable(f"Lost RPC while waiting for {pending.tx_hash}: {exc}", settlement_related=True) from exc
        except _NODE_ERRORS as exc:
            raise TransactionRejected(f"Receipt lookup for {pending.tx_hash} failed: {exc}") from exc

        block_number = raw.get("blockNumber")
        if block_number is None:
            raise TransactionRejected(f"Receipt for {pending.tx_hash} has no block number.")
        receipt = Receipt(
            tx_hash=pending.tx_hash,
            block_number=int(block_number),
            status=int(raw.get("status", 0)),
            gas_used=raw.get("gasUsed"),
        )
        if not receipt.succeeded:
            raise TransactionRejected(f"Transaction {pending.tx_hash} reverted in block {receipt.block_number}.")
        logger.info(f"Transaction {pending.tx_hash} confirmed in block {receipt.block_number}")
        return receipt


class OnChainPaymentVerifier:
    """
    Supplier-side check that a proof is a mined transfer of at least the
    invoiced amount to the invoiced destination.
    """

    def __init__(
        self,
        rpc_url: str,
        *,
        web3_factory: Web3Factory = default_web3_factory,
        request_timeout: float = 10.0,
    ):
        self.rpc_url = rpc_url
        self._web3_factory = web3_factory
        self._request_timeout = request_timeout
        self._client: AsyncWeb3 | None = None

    def _web3(self) -> AsyncWeb3:
        if self._client is None:
            self._client = self._web3_factory(self.rpc_url, self._request_timeout)
        return self._client

    async def verify(self, proof: str, invoice: Invoice) -> None:
        if invoice.currency != Currency.ETH:
            raise PaymentVerificationFailed(f"Cannot verify {invoice.currency.value} payments on-chain.")
        client = self._web3()
        try:
            tx = await client.eth.get_transaction(proof)
            raw_receipt = await client.eth.get_transaction_receipt(proof)
        except TransactionNotFound as exc:
            raise PaymentVerificationFailed(f"Transaction {proof} not found.") from exc
        except (*_NETWORK_ERRORS, *_NODE_ERRORS) as exc:
            raise PaymentVerificationFailed(f"Could not look up transaction {proof}: {exc}") from exc

        if raw_receipt.get("blockNumber") is None or raw_receipt.get("status") != 1:
            raise PaymentVerificationFailed(f"Transaction {proof} is not a confirmed success.")
        recipient = tx.get("to")
        try:
            paid_to_invoice = recipient is not None and Web3.to_checksum_address(recipient) == Web3.to_checksum_address(
                invoice.destination
            )
        except (ValueError, TypeError):
            paid_to_invoice = False
        if not paid_to_invoice:
            raise PaymentVerificationFailed(f"Transaction {proof} was not sent to {invoice.destination}.")
        if int(tx.get("value", 0)) < Web3.to_wei(invoice.amount, "ether"):
            raise PaymentVerificationFailed(f"Transaction {proof} pays less than {invoice.amount} ETH.")
        logger.info(f"Payment {proof} verified against invoice {invoice.invoice_id}")
