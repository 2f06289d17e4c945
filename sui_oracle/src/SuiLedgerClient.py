"""SuiLedgerClient: Sui JSON-RPC implementation of the ledger client.

Transactions are built by the full node (``unsafe_moveCall``), signed
locally by SuiSigner and submitted with ``sui_executeTransactionBlock``.

Move interface expected in ``{package}::{module}``::

    public fun create_price_object(symbol: vector<u8>, price: u64,
                                   timestamp_ms: u64, decimals: u8, ctx: &mut TxContext)
    public fun update_price(obj: &mut PriceObject, price: u64, timestamp_ms: u64)
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any

import httpx

from .LedgerClient import (
    NUM_DECIMALS,
    ChainError,
    FatalChainError,
    LedgerClient,
    ObjectRef,
    StaleReferenceError,
    TransientChainError,
    scale_price,
)
from .Quote import AggregatedPrice
from .SuiSigner import SuiSigner, normalize_sui_address
from .TradingPair import TradingPair

logger = logging.getLogger(__name__)

# Public full node endpoints based on the network.
NETWORK_RPC_URLS: dict[str, str] = {
    "mainnet": "https://fullnode.mainnet.sui.io:443",
    "testnet": "https://fullnode.testnet.sui.io:443",
    "devnet": "https://fullnode.devnet.sui.io:443",
    "localnet": "http://127.0.0.1:9000",
}

DEFAULT_MODULE_NAME = "price_oracle"
CREATE_FUNCTION = "create_price_object"
UPDATE_FUNCTION = "update_price"
PRICE_OBJECT_STRUCT = "PriceObject"
DEFAULT_GAS_BUDGET = 100_000_000

# Lowercase substrings of node error messages, checked in this order.
FATAL_MARKERS = (
    "package object does not exist",
    "modulenotfound",
    "functionnotfound",
    "could not resolve function",
    "invalid user signature",
    "signature is not valid",
    "cannot find gas coin",
    "no valid gas coins",
    "gasbalancetoolow",
    "insufficientcoinbalance",
)
STALE_MARKERS = (
    "could not find the referenced object",
    "object not found",
    "objectnotfound",
    "notexists",
    "deleted",
    "objectversionunavailableforconsumption",
    "version mismatch",
)


def classify_chain_error(message: str) -> ChainError:
    """Map a node error message to the matching ChainError subclass.

    :param message: Error text from the node.
    :returns: FatalChainError, StaleReferenceError or TransientChainError.
    """
    lowered = message.lower()
    if any(marker in lowered for marker in FATAL_MARKERS):
        return FatalChainError(message)
    if any(marker in lowered for marker in STALE_MARKERS):
        return StaleReferenceError(message)
    return TransientChainError(message)


class SuiLedgerClient(LedgerClient):
    """Publishes price objects through a Sui full node.

    :ivar rpc_url: Full node JSON-RPC endpoint.
    :ivar package_id: Normalized id of the published oracle package.
    :ivar module_name: Move module holding the price object functions.
    :ivar gas_budget: Gas budget per transaction in MIST.
    :ivar decimals: Fixed-point decimals of the stored price.
    """

    def __init__(
        self,
        rpc_url: str,
        package_id: str,
        signer: SuiSigner,
        module_name: str = DEFAULT_MODULE_NAME,
        gas_budget: int = DEFAULT_GAS_BUDGET,
        decimals: int = NUM_DECIMALS,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        :param rpc_url: Full node JSON-RPC endpoint.
        :param package_id: Oracle package id.
        :param signer: Signer holding the publisher key.
        :param module_name: Move module name (default: price_oracle).
        :param gas_budget: Gas budget in MIST (default: 100_000_000).
        :param decimals: Fixed-point decimals (default: 6).
        :param timeout: Request timeout in seconds (default: 30).
        :param client: Optional pre-configured HTTP client.
        :raises ValueError: If the package id is malformed.
        """
        self.rpc_url = rpc_url
        self.package_id = normalize_sui_address(package_id)
        self.module_name = module_name
        self.signer = signer
        self.gas_budget = gas_budget
        self.decimals = decimals
        self.timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout, connect=10.0))
        self._request_id = 0

    @property
    def price_object_type(self) -> str:
        return f"{self.package_id}::{self.module_name}::{PRICE_OBJECT_STRUCT}"

    async def create(self, pair: TradingPair, aggregated: AggregatedPrice) -> ObjectRef:
        """Create the PriceObject for a pair.

        :param pair: Trading pair the object tracks.
        :param aggregated: Initial price.
        :returns: Reference to the created object.
        :raises ChainError: On failure.
        """
        arguments = [
            list(pair.symbol.encode("utf-8")),
            str(scale_price(aggregated.price, self.decimals)),
            str(aggregated.timestamp_ms),
            self.decimals,
        ]
        result = await self._execute_move_call(CREATE_FUNCTION, arguments)

        for change in result.get("objectChanges") or []:
            if change.get("type") != "created":
                continue
            if change.get("objectType") != self.price_object_type:
                continue
            owner = change.get("owner")
            if isinstance(owner, dict) and "AddressOwner" in owner:
                if normalize_sui_address(owner["AddressOwner"]) != self.signer.address:
                    continue
            try:
                object_id = normalize_sui_address(change["objectId"])
                version = int(change["version"])
            except (KeyError, TypeError, ValueError) as e:
                raise TransientChainError(f"Malformed created object change: {change}") from e
            logger.info(
                f"{pair}: created {PRICE_OBJECT_STRUCT} {object_id} "
                f"(version={version}, digest={result.get('digest')})"
            )
            return ObjectRef(object_id=object_id, version=version)

        # The transaction succeeded but the object cannot be identified. Retrying
        # would create another object, so this needs an operator.
        raise FatalChainError(
            f"{CREATE_FUNCTION} for {pair} succeeded (digest={result.get('digest')}) "
            f"but no {self.price_object_type} was found in object changes"
        )

    async def update(self, ref: ObjectRef, aggregated: AggregatedPrice) -> int | None:
        """Update the PriceObject referenced by ``ref``.

        The object is read first. It is current as long as it still exists,
        is a PriceObject and is owned by the signer; only the signer can move
        its version, so a version ahead of the stored one is adopted. This
        covers updates that executed although their response was lost.

        :param ref: Stored reference to the object.
        :param aggregated: New price.
        :returns: New object version, or None if not reported.
        :raises StaleReferenceError: If the object is gone, retyped or owned by another address.
        :raises ChainError: On other failures.
        """
        object_id = normalize_sui_address(ref.object_id)
        current = await self._get_object_version(object_id)
        if ref.version is not None and current != ref.version:
            logger.info(
                f"{object_id} is at version {current}, stored {ref.version}; "
                f"adopting the on-chain version"
            )

        arguments = [
            object_id,
            str(scale_price(aggregated.price, self.decimals)),
            str(aggregated.timestamp_ms),
        ]
        result = await self._execute_move_call(UPDATE_FUNCTION, arguments)

        for change in result.get("objectChanges") or []:
            if change.get("type") == "mutated" and change.get("objectId") is not None:
                if normalize_sui_address(change["objectId"]) == object_id:
                    try:
                        return int(change["version"])
                    except (KeyError, TypeError, ValueError):
                        return None
        return None

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client and not self._client.is_closed:
            await self._client.aclose()

    async def _get_object_version(self, object_id: str) -> int:
        """Read the current version of a price object owned by the signer.

        :raises StaleReferenceError: If the object is gone, not a PriceObject
            or no longer owned by the signer.
        """
        result = await self._rpc(
            "sui_getObject", [object_id, {"showType": True, "showOwner": True}]
        )
        if not isinstance(result, dict):
            raise TransientChainError(f"Unexpected sui_getObject result: {result!r}")

        error = result.get("error")
        if error:
            code = str(error.get("code", "")) if isinstance(error, dict) else str(error)
            if code in ("notExists", "deleted"):
                raise StaleReferenceError(f"{object_id} {code}")
            raise TransientChainError(f"sui_getObject {object_id}: {error}")

        data = result.get("data") or {}
        object_type = data.get("type")
        if object_type is not None and object_type != self.price_object_type:
            raise StaleReferenceError(f"{object_id} has type {object_type}")

        owner = data.get("owner")
        if owner is not None:
            address = owner.get("AddressOwner") if isinstance(owner, dict) else None
            if address is None or normalize_sui_address(address) != self.signer.address:
                raise StaleReferenceError(f"{object_id} is owned by {owner}")

        try:
            return int(data["version"])
        except (KeyError, TypeError, ValueError) as e:
            raise TransientChainError(f"sui_getObject {object_id}: no version in {data}") from e

    async def _execute_move_call(
        self,
        function: str,
        arguments: list[Any],
    ) -> dict[str, Any]:
        """Build, sign and execute a Move call.

        :param function: Move function name.
        :param arguments: JSON-encoded call arguments.
        :returns: Transaction block response.
        :raises ChainError: On failure.
        """
        tx = await self._rpc(
            "unsafe_moveCall",
            [
                self.signer.address,
                self.package_id,
                self.module_name,
                function,
                [],
                arguments,
                None,
                str(self.gas_budget),
            ],
        )
        try:
            tx_bytes = tx["txBytes"]
            signature = self.signer.sign_transaction(base64.b64decode(tx_bytes))
        except (KeyError, TypeError, binascii.Error) as e:
            raise TransientChainError(f"Malformed unsafe_moveCall result: {tx!r}") from e

        result = await self._rpc(
            "sui_executeTransactionBlock",
            [
                tx_bytes,
                [signature],
                {"showEffects": True, "showObjectChanges": True},
                "WaitForLocalExecution",
            ],
        )
        if not isinstance(result, dict):
            raise TransientChainError(f"Unexpected execution result: {result!r}")

        effects = result.get("effects") or {}
        status = effects.get("status") or {}
        if status.get("status") != "success":
            raise classify_chain_error(
                f"{function} failed: {status.get('error') or 'no effects'} "
                f"(digest={result.get('digest')})"
            )
        return result

    async def _rpc(self, method: str, params: list[Any]) -> Any:
        """Make a JSON-RPC call to the full node.

        :param method: RPC method name.
        :param params: Positional parameters.
        :returns: The ``result`` member of the response.
        :raises ChainError: On transport, HTTP or RPC errors.
        """
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params,
        }
        logger.debug("RPC %s (id=%d)", method, self._request_id)

        try:
            response = await self._client.post(self.rpc_url, json=payload, timeout=self.timeout)
        except httpx.TimeoutException as e:
            raise TransientChainError(f"{method} timed out: {e}") from e
        except httpx.RequestError as e:
            raise TransientChainError(f"{method} request failed: {e}") from e

        if response.status_code in (401, 403, 404):
            raise FatalChainError(
                f"{method}: HTTP {response.status_code} from {self.rpc_url}"
            )
        if not response.is_success:
            raise TransientChainError(
                f"{method}: HTTP {response.status_code}: {response.text[:200]}"
            )

        try:
            body = response.json()
        except ValueError as e:
            raise TransientChainError(f"{method}: invalid JSON response") from e

        if not isinstance(body, dict):
            raise TransientChainError(f"{method}: unexpected response {body!r}")

        error = body.get("error")
        if error:
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            raise classify_chain_error(f"{method}: {message}")
        return body.get("result")
