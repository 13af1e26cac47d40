from __future__ import annotations

import random
import time
from typing import Any, Callable

import requests
from Crypto.Hash import keccak

from .models import Address


USER_AGENT = "cyclo-rewards/0.1"

# HTTP statuses worth another attempt (rate limits / flaky gateways).
RETRYABLE_HTTP_STATUS = {429, 500, 502, 503, 504}


class RpcError(RuntimeError):
    def __init__(self, message: str, *, code: int | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code


def _error_from_payload(err: Any) -> RpcError:
    if isinstance(err, dict):
        code = err.get("code")
        return RpcError(str(err.get("message", err)), code=code if isinstance(code, int) else None)
    return RpcError(str(err))


def block_tag(block: int | str) -> str:
    return hex(block) if isinstance(block, int) else block


class RpcClient:
    """Minimal JSON-RPC client.

    Transport failures (HTTP 429/5xx, connection resets, undecodable bodies)
    are retried with exponential backoff. JSON-RPC error objects are returned
    to the caller as `RpcError` without retrying: whether they are transient
    depends on the call.
    """

    def __init__(
        self,
        rpc_url: str,
        *,
        timeout_s: int = 30,
        max_attempts: int = 6,
        backoff_base_s: float = 0.5,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.rpc_url = rpc_url
        self.timeout_s = timeout_s
        self.max_attempts = max_attempts
        self.backoff_base_s = backoff_base_s
        self._session = session or requests.Session()
        self._sleep = sleep
        self._id = 0

    def with_max_attempts(self, max_attempts: int) -> RpcClient:
        """Same endpoint and session, with a different transport retry budget."""
        return RpcClient(
            self.rpc_url,
            timeout_s=self.timeout_s,
            max_attempts=max_attempts,
            backoff_base_s=self.backoff_base_s,
            session=self._session,
            sleep=self._sleep,
        )

    def _post(self, payload: Any) -> Any:
        for attempt in range(1, self.max_attempts + 1):
            try:
                resp = self._session.post(
                    self.rpc_url,
                    json=payload,
                    timeout=self.timeout_s,
                    headers={"User-Agent": USER_AGENT},
                )
                if resp.status_code in RETRYABLE_HTTP_STATUS:
                    raise requests.HTTPError(f"RPC HTTP {resp.status_code}", response=resp)
                resp.raise_for_status()
                return resp.json()
            except (requests.RequestException, ValueError) as e:
                status = None
                if isinstance(e, requests.HTTPError) and getattr(e, "response", None) is not None:
                    status = int(e.response.status_code)
                    if 400 <= status < 500 and status != 429:
                        raise RpcError(f"RPC HTTP {status}", status_code=status) from e
                if attempt >= self.max_attempts:
                    raise RpcError(f"RPC transport error: {e}", status_code=status) from e
                self._sleep(self.backoff_base_s * (2 ** (attempt - 1)) + random.uniform(0, 0.25))
        raise RpcError("RPC transport error: no attempts made")

    def call(self, method: str, params: list[Any]) -> Any:
        self._id += 1
        data = self._post({"jsonrpc": "2.0", "id": self._id, "method": method, "params": params})
        if not isinstance(data, dict):
            raise RpcError(f"invalid JSON-RPC response: {str(data)[:200]}")
        if data.get("error"):
            raise _error_from_payload(data["error"])
        return data.get("result")

    def batch(self, calls: list[tuple[str, list[Any]]]) -> list[tuple[Any, RpcError | None]]:
        """Send several calls in one JSON-RPC batch.

        Returns one `(result, error)` pair per call, in call order. A failed
        item does not fail the batch; a failed request does.
        """
        if not calls:
            return []
        payload = [{"jsonrpc": "2.0", "id": i, "method": m, "params": p} for i, (m, p) in enumerate(calls)]
        data = self._post(payload)
        if isinstance(data, dict) and data.get("error"):
            raise _error_from_payload(data["error"])
        if not isinstance(data, list):
            raise RpcError(f"invalid JSON-RPC batch response: {str(data)[:200]}")

        by_id = {item.get("id"): item for item in data if isinstance(item, dict)}
        out: list[tuple[Any, RpcError | None]] = []
        for i in range(len(calls)):
            item = by_id.get(i)
            if item is None:
                out.append((None, RpcError(f"missing response for batch item {i}")))
            elif item.get("error"):
                out.append((None, _error_from_payload(item["error"])))
            else:
                out.append((item.get("result"), None))
        return out

    def eth_call(self, to: Address, data: str, block: int | str = "latest") -> str:
        return self.call("eth_call", [{"to": str(to), "data": data}, block_tag(block)])


def keccak_selector(signature: str) -> str:
    h = keccak.new(digest_bits=256)
    h.update(signature.encode("utf-8"))
    return h.hexdigest()[:8]


def abi_words(hex_str: str) -> list[str]:
    if hex_str.startswith("0x"):
        hex_str = hex_str[2:]
    return [hex_str[i : i + 64] for i in range(0, len(hex_str) - len(hex_str) % 64, 64)]


def decode_int256(word_hex: str) -> int:
    value = int(word_hex, 16)
    if value >= 2**255:
        value -= 2**256
    return value


def decode_address_word(word_hex: str) -> Address:
    return Address.parse("0x" + word_hex[-40:])
