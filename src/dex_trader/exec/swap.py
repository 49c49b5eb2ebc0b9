"""Swap execution: deterministic simulation and live routing on an EVM chain."""

from __future__ import annotations

import json
import re
import time
from pathlib import Path
from typing import Any, Protocol

import httpx
from eth_account import Account
from eth_account.signers.local import LocalAccount
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential
from web3 import Web3
from web3.exceptions import Web3Exception

from dex_trader.config import Settings
from dex_trader.types import ExecutionResult
from dex_trader.utils.logging import get_logger, log_execution

DRY_RUN_REF = "DRY_RUN"
_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_MAX_UINT256 = 2**256 - 1
_RECEIPT_TIMEOUT_SEC = 60

ERC20_ABI = [
    {"inputs": [], "name": "decimals", "outputs": [{"name": "", "type": "uint8"}], "stateMutability": "view", "type": "function"},
    {"inputs": [{"name": "owner", "type": "address"}], "name": "balanceOf", "outputs": [{"name": "", "type": "uint256"}], "stateMutability": "view", "type": "function"},
    {"inputs": [{"name": "owner", "type": "address"}, {"name": "spender", "type": "address"}], "name": "allowance", "outputs": [{"name": "", "type": "uint256"}], "stateMutability": "view", "type": "function"},
    {"inputs": [{"name": "spender", "type": "address"}, {"name": "amount", "type": "uint256"}], "name": "approve", "outputs": [{"name": "", "type": "bool"}], "stateMutability": "nonpayable", "type": "function"},
]


class ExecutionError(Exception):
    """Base execution error."""


class QuoteError(ExecutionError):
    """No usable quote from the routing provider."""


class SubmissionError(ExecutionError):
    """Transaction could not be sent or did not succeed."""


class UnknownAssetError(ExecutionError):
    """Asset is neither a known symbol nor a token address."""


class WalletError(Exception):
    """Wallet file missing or unreadable."""


class Executor(Protocol):
    """Turns a swap request into a result.

    ``amount`` is in human units of ``from_asset``. ``reference_price`` is the
    USD price of the non-quote leg as seen by the caller.
    """

    def execute(
        self,
        from_asset: str,
        to_asset: str,
        amount: float,
        *,
        simulate: bool,
        reference_price: float,
    ) -> ExecutionResult: ...


class SimulatedExecutor:
    """Fills at the reference price with no slippage and no side effects."""

    def __init__(self, quote_symbol: str = "USDC") -> None:
        self._quote_symbol = quote_symbol.upper()
        self._logger = get_logger("dex_trader.exec.swap")

    def execute(
        self,
        from_asset: str,
        to_asset: str,
        amount: float,
        *,
        simulate: bool = True,
        reference_price: float,
    ) -> ExecutionResult:
        if amount <= 0:
            raise ExecutionError("amount_must_be_positive")
        if reference_price <= 0:
            raise QuoteError("reference_price_unavailable")

        if from_asset.upper() == self._quote_symbol:
            output = amount / reference_price
        elif to_asset.upper() == self._quote_symbol:
            output = amount * reference_price
        else:
            raise UnknownAssetError(f"no_quote_leg: {from_asset} -> {to_asset}")

        log_execution(
            self._logger,
            from_asset=from_asset,
            to_asset=to_asset,
            amount=amount,
            success=True,
            execution_ref=DRY_RUN_REF,
            output_amount=output,
            simulated=True,
        )
        return ExecutionResult(
            execution_ref=DRY_RUN_REF,
            output_amount=float(output),
            price_impact=0.0,
            elapsed_ms=0.0,
            simulated=True,
        )


class _QuoteTransaction(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    to: str
    data: str
    value: int = 0
    gas: int | None = None
    gas_price: int | None = Field(default=None, alias="gasPrice")


class SwapQuote(BaseModel):
    """Subset of the routing provider's quote response."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    buy_amount: int = Field(alias="buyAmount")
    sell_amount: int = Field(alias="sellAmount")
    liquidity_available: bool = Field(default=True, alias="liquidityAvailable")
    transaction: _QuoteTransaction
    allowance_spender: str | None = None
    price_impact_pct: float = 0.0

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> SwapQuote:
        """Parse a quote payload; raises QuoteError when unusable."""
        if payload.get("liquidityAvailable") is False:
            raise QuoteError("liquidity_unavailable")
        issues = payload.get("issues") or {}
        allowance = issues.get("allowance") if isinstance(issues, dict) else None
        spender = allowance.get("spender") if isinstance(allowance, dict) else None
        try:
            return cls.model_validate(
                {
                    **payload,
                    "allowance_spender": spender,
                    "price_impact_pct": payload.get("estimatedPriceImpact") or 0.0,
                }
            )
        except ValidationError as exc:
            raise QuoteError(f"invalid_quote: {exc.error_count()} errors") from exc


class SwapRouterExecutor:
    """Live swaps through a routing API, signed locally and sent over RPC."""

    def __init__(
        self,
        settings: Settings,
        account: LocalAccount,
        *,
        w3: Web3 | None = None,
        http: httpx.Client | None = None,
    ) -> None:
        self._settings = settings
        self._account = account
        self._logger = get_logger("dex_trader.exec.swap")
        self._w3 = w3 or Web3(Web3.HTTPProvider(settings.rpc_url))
        self._http = http or httpx.Client(timeout=settings.swap_timeout)
        self._simulator = SimulatedExecutor(settings.quote_token_symbol)
        self._decimals: dict[str, int] = {}
        self._known_assets = {
            settings.quote_token_symbol.upper(): settings.quote_token_address,
        }

    @property
    def address(self) -> str:
        return self._account.address

    def close(self) -> None:
        self._http.close()

    def execute(
        self,
        from_asset: str,
        to_asset: str,
        amount: float,
        *,
        simulate: bool,
        reference_price: float,
    ) -> ExecutionResult:
        if simulate:
            return self._simulator.execute(
                from_asset, to_asset, amount, simulate=True, reference_price=reference_price
            )

        started = time.perf_counter()
        sell_token = self.resolve_asset(from_asset)
        buy_token = self.resolve_asset(to_asset)
        # Both decimals are known before anything is sent.
        sell_decimals = self.token_decimals(sell_token)
        buy_decimals = self.token_decimals(buy_token)
        sell_units = int(amount * 10**sell_decimals)
        if sell_units <= 0:
            raise ExecutionError("amount_below_token_precision")

        quote = self._get_quote(sell_token, buy_token, sell_units)
        if quote.allowance_spender:
            self._ensure_allowance(sell_token, quote.allowance_spender, sell_units)

        tx_hash = self._submit(
            {
                "to": Web3.to_checksum_address(quote.transaction.to),
                "data": quote.transaction.data,
                "value": quote.transaction.value,
                **({"gas": quote.transaction.gas} if quote.transaction.gas else {}),
                **({"gasPrice": quote.transaction.gas_price} if quote.transaction.gas_price else {}),
            }
        )
        output = quote.buy_amount / 10**buy_decimals
        elapsed_ms = (time.perf_counter() - started) * 1000
        log_execution(
            self._logger,
            from_asset=from_asset,
            to_asset=to_asset,
            amount=amount,
            success=True,
            execution_ref=tx_hash,
            output_amount=output,
            price_impact=quote.price_impact_pct,
            elapsed_ms=round(elapsed_ms, 2),
        )
        return ExecutionResult(
            execution_ref=tx_hash,
            output_amount=float(output),
            price_impact=quote.price_impact_pct,
            elapsed_ms=elapsed_ms,
            simulated=False,
        )

    def resolve_asset(self, asset: str) -> str:
        """Map a symbol or address to a checksummed token address."""
        if _ADDRESS_RE.match(asset):
            return Web3.to_checksum_address(asset)
        address = self._known_assets.get(asset.upper())
        if address is None:
            raise UnknownAssetError(f"unknown_asset: {asset}")
        return Web3.to_checksum_address(address)

    def token_decimals(self, token: str) -> int:
        """ERC-20 decimals, queried once per token."""
        if token not in self._decimals:
            try:
                self._decimals[token] = int(self._erc20(token).functions.decimals().call())
            except (Web3Exception, ValueError, OSError) as exc:
                raise ExecutionError(f"decimals_lookup_failed: {token}: {exc}") from exc
        return self._decimals[token]

    def wallet_summary(self) -> dict[str, Any]:
        """Native and quote token balances of the trading wallet."""
        quote = self.resolve_asset(self._settings.quote_token_symbol)
        raw_quote = self._erc20(quote).functions.balanceOf(self.address).call()
        return {
            "address": self.address,
            "native_balance": float(Web3.from_wei(self._w3.eth.get_balance(self.address), "ether")),
            "quote_balance": raw_quote / 10 ** self.token_decimals(quote),
            "quote_symbol": self._settings.quote_token_symbol,
        }

    def _erc20(self, token: str) -> Any:
        return self._w3.eth.contract(address=Web3.to_checksum_address(token), abi=ERC20_ABI)

    def _get_quote(self, sell_token: str, buy_token: str, sell_units: int) -> SwapQuote:
        headers = {"0x-version": "v2"}
        if self._settings.swap_api_key:
            headers["0x-api-key"] = self._settings.swap_api_key
        params = {
            "chainId": self._settings.chain_numeric_id,
            "sellToken": sell_token,
            "buyToken": buy_token,
            "sellAmount": str(sell_units),
            "taker": self.address,
            "slippageBps": int(self._settings.max_slippage * 100),
        }
        try:
            response = self._http.get(
                f"{self._settings.swap_api_url.rstrip('/')}/quote",
                params=params,
                headers=headers,
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise QuoteError(str(exc)) from exc
        if not isinstance(payload, dict):
            raise QuoteError("invalid_quote_payload")
        return SwapQuote.from_payload(payload)

    def _ensure_allowance(self, token: str, spender: str, units: int) -> None:
        contract = self._erc20(token)
        spender = Web3.to_checksum_address(spender)
        try:
            current = contract.functions.allowance(self.address, spender).call()
        except (Web3Exception, ValueError, OSError) as exc:
            raise SubmissionError(f"allowance_lookup_failed: {token}: {exc}") from exc
        if current >= units:
            return
        self._logger.info("approving_spender", token=token, spender=spender)
        try:
            approve_tx = contract.functions.approve(spender, _MAX_UINT256).build_transaction(
                {"from": self.address}
            )
        except (Web3Exception, ValueError, OSError) as exc:
            raise SubmissionError(f"approve_build_failed: {token}: {exc}") from exc
        self._submit({key: approve_tx[key] for key in ("to", "data", "value", "gas") if key in approve_tx})

    def _submit(self, tx: dict[str, Any]) -> str:
        """Send a transaction and wait for a successful receipt."""
        tx_hash = self._send(tx)
        try:
            receipt = self._w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=_RECEIPT_TIMEOUT_SEC
            )
        except (Web3Exception, ValueError, OSError) as exc:
            raise SubmissionError(f"receipt_unavailable: {tx_hash}: {exc}") from exc
        if receipt["status"] != 1:
            raise SubmissionError(f"transaction_failed: {tx_hash}")
        return tx_hash

    @retry(
        retry=retry_if_exception_type(SubmissionError),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    def _send(self, tx: dict[str, Any]) -> str:
        try:
            full_tx = {
                **tx,
                "from": self.address,
                "chainId": self._settings.chain_numeric_id,
                "nonce": self._w3.eth.get_transaction_count(self.address, "pending"),
            }
            full_tx.setdefault("gasPrice", self._w3.eth.gas_price)
            if "gas" not in full_tx:
                full_tx["gas"] = self._w3.eth.estimate_gas(full_tx)
            signed = self._account.sign_transaction(full_tx)
            tx_hash = self._w3.eth.send_raw_transaction(signed.raw_transaction)
        except (Web3Exception, ValueError, OSError) as exc:
            self._logger.warning("transaction_send_failed", error=str(exc))
            raise SubmissionError(str(exc)) from exc
        return Web3.to_hex(tx_hash)


def load_wallet(path: Path) -> LocalAccount:
    """Load a private key from a JSON ``{"private_key": ...}`` file or a bare hex key."""
    if not path.exists():
        raise WalletError(f"wallet_file_not_found: {path}")
    text = path.read_text(encoding="utf-8").strip()
    try:
        payload = json.loads(text)
    except ValueError:
        payload = text
    key = payload.get("private_key") if isinstance(payload, dict) else text
    if not isinstance(key, str) or not key:
        raise WalletError(f"wallet_file_invalid: {path}")
    try:
        return Account.from_key(key)
    except ValueError as exc:
        raise WalletError(f"wallet_key_invalid: {path}") from exc


def build_executor(settings: Settings) -> Executor:
    """Simulated executor in dry-run mode, otherwise the live router.

    Raises:
        WalletError: live mode without a usable wallet file.
    """
    if settings.dry_run:
        return SimulatedExecutor(settings.quote_token_symbol)
    return SwapRouterExecutor(settings, load_wallet(settings.wallet_path))
