"""
Solana JSON-RPC Account Fetcher
===============================
The only network-facing piece. Wraps getProgramAccounts / getAccountInfo
and hands back raw account bytes.

No retries here: a failed call raises FetchError and the caller decides.
"""

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import requests

from .config import ProjectorConfig

logger = logging.getLogger(__name__)


class FetchError(Exception):
    """Transport or RPC-level failure while fetching accounts."""
    pass


@dataclass(frozen=True)
class MemcmpFilter:
    """Server-side filter: account data at `offset` must equal `data`."""
    offset: int
    data: bytes

    def to_rpc(self) -> Dict[str, Any]:
        return {
            "memcmp": {
                "offset": self.offset,
                "bytes": base64.b64encode(self.data).decode("ascii"),
                "encoding": "base64",
            }
        }


@dataclass(frozen=True)
class RawAccount:
    """Undecoded account as returned by the RPC node."""
    address: str
    data: bytes


def _decode_account_data(value: Any) -> bytes:
    """RPC returns base64 data as [payload, "base64"]."""
    if not isinstance(value, list) or len(value) != 2 or value[1] != "base64":
        raise FetchError(f"Unexpected account data encoding: {value!r:.80}")
    try:
        return base64.b64decode(value[0], validate=True)
    except (binascii.Error, TypeError) as e:
        raise FetchError(f"Invalid base64 account data: {e}") from e


class SolanaRpcClient:
    """
    Minimal JSON-RPC client for reading program accounts.

    Any object with the same fetch_accounts / fetch_account methods can
    stand in for it (tests use an in-memory fake).
    """

    def __init__(self, config: ProjectorConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()
        self.session.headers.update({
            "User-Agent": "BlockBattleProjector/0.1",
            "Content-Type": "application/json",
        })
        self._request_id = 0

    def _call(self, method: str, params: list) -> Any:
        """POST a JSON-RPC request and return its `result` member."""
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params,
        }
        try:
            response = self.session.post(
                self.config.rpc_url, json=payload, timeout=self.config.request_timeout
            )
            response.raise_for_status()
            body = response.json()
        except requests.RequestException as e:
            logger.error(f"RPC {method} failed: {e}")
            raise FetchError(f"{method}: {e}") from e
        except ValueError as e:
            logger.error(f"RPC {method} returned non-JSON body: {e}")
            raise FetchError(f"{method}: invalid JSON response") from e

        if not isinstance(body, dict):
            raise FetchError(f"{method}: unexpected response {body!r:.80}")
        if "error" in body:
            error = body["error"] or {}
            message = error.get("message", error) if isinstance(error, dict) else error
            logger.error(f"RPC {method} error: {message}")
            raise FetchError(f"{method}: {message}")
        if "result" not in body:
            raise FetchError(f"{method}: response has no result")
        return body["result"]

    def fetch_accounts(self, program_id: str, filters: Sequence[MemcmpFilter] = ()) -> List[RawAccount]:
        """
        getProgramAccounts for a program, with optional memcmp filters.

        Returns:
            List of RawAccount in node order.
        """
        if not program_id:
            raise FetchError("program_id is not configured")

        options: Dict[str, Any] = {"encoding": "base64"}
        if filters:
            options["filters"] = [f.to_rpc() for f in filters]

        result = self._call("getProgramAccounts", [program_id, options])
        if not isinstance(result, list):
            raise FetchError(f"getProgramAccounts: expected list, got {type(result).__name__}")

        accounts = []
        for item in result:
            try:
                address = item["pubkey"]
                data = item["account"]["data"]
            except (KeyError, TypeError) as e:
                raise FetchError(f"getProgramAccounts: malformed item ({e})") from e
            accounts.append(RawAccount(address=address, data=_decode_account_data(data)))

        logger.debug(f"getProgramAccounts returned {len(accounts)} accounts")
        return accounts

    def fetch_account(self, address: str) -> Optional[RawAccount]:
        """getAccountInfo for one address. None if the account does not exist."""
        result = self._call("getAccountInfo", [address, {"encoding": "base64"}])
        if not isinstance(result, dict):
            raise FetchError(f"getAccountInfo: unexpected result {result!r:.80}")

        value = result.get("value")
        if value is None:
            return None
        try:
            data = value["data"]
        except (KeyError, TypeError) as e:
            raise FetchError(f"getAccountInfo: malformed value ({e})") from e
        return RawAccount(address=address, data=_decode_account_data(data))
