# lightweight JSON-RPC pool (async) with retries and rotation across configured endpoints
import asyncio
import json
import logging
import os
import random
from contextlib import asynccontextmanager
from typing import List, Optional, Tuple, Union

import aiohttp

from .errors import ConfigError

logger = logging.getLogger(__name__)

RPC_URL_ENV = "ETH_RPC_URL"


def parse_urls(urls: Optional[Union[str, List[str]]]) -> List[str]:
    if isinstance(urls, str):
        return [u.strip() for u in urls.split(",") if u.strip()]
    return [u.strip() for u in (urls or []) if u.strip()]


class RpcPool:
    """
    Rotating RPC pool with retries + jitter.
    post(payload) accepts dict (single) or list (batch). Returns (ok, data).
    Endpoints come from ``urls`` or the ETH_RPC_URL env var (comma-separated).
    """
    def __init__(
        self,
        urls: Optional[Union[str, List[str]]] = None,
        concurrency: int = 4,
        timeout: float = 30,
        max_retries: int = 3,
        backoff: float = 1.0,
    ):
        env_urls = parse_urls(os.getenv(RPC_URL_ENV, ""))
        self.urls: List[str] = parse_urls(urls) or env_urls
        if not self.urls:
            raise ConfigError(f"No RPC endpoint configured (pass --rpc-url or set {RPC_URL_ENV})")
        self._rr = random.randint(0, len(self.urls) - 1)
        self._session: Optional[aiohttp.ClientSession] = None
        self.sem = asyncio.Semaphore(max(1, int(concurrency)))
        self.timeout = float(timeout)
        self.max_retries = max(1, int(max_retries))
        # scales every retry delay; 0 disables waiting
        self.backoff = max(0.0, float(backoff))

    def _pick(self) -> str:
        url = self.urls[self._rr % len(self.urls)]
        self._rr += 1
        return url

    @asynccontextmanager
    async def _client(self):
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                raise_for_status=False,
                connector=aiohttp.TCPConnector(ttl_dns_cache=300),
                headers={"Content-Type": "application/json"},
            )
        try:
            yield self._session
        finally:
            # keep-alive; call close() explicitly when done
            pass

    async def post(self, payload, timeout: Optional[float] = None) -> Tuple[bool, object]:
        timeout = aiohttp.ClientTimeout(total=timeout or self.timeout)
        async with self.sem:
            last_err = None
            for attempt in range(1, self.max_retries + 1):
                url = self._pick()
                try:
                    async with self._client() as client:
                        async with client.post(url, json=payload, timeout=timeout) as resp:
                            text = await resp.text()
                            if resp.status == 429:
                                last_err = f"429 {url}: {text[:160]}"
                                delay = min(30, 0.6 * (2 ** attempt)) + random.random()
                            elif resp.status >= 500:
                                last_err = f"{resp.status} {url}: {text[:160]}"
                                delay = min(30, 0.5 * (2 ** attempt)) + random.random()
                            elif resp.status != 200:
                                last_err = f"{resp.status} {url}: {text[:160]}"
                                delay = min(8, 0.4 * attempt) + random.random() * 0.5
                            else:
                                try:
                                    data = json.loads(text)
                                except ValueError:
                                    return False, {"error": "invalid_json", "text": text[:400]}
                                if isinstance(data, dict) and "error" in data:
                                    # the node answered; a JSON-RPC error is not retried
                                    return False, {"error": f"rpc_error {url}: {data['error']}", "rpc_error": data["error"]}
                                return True, data
                except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                    last_err = f"{url}: {e!r}"
                    delay = min(8, 0.5 * attempt) + random.random() * 0.5
                logger.debug("rpc attempt %d/%d failed: %s", attempt, self.max_retries, last_err)
                if attempt < self.max_retries:
                    await asyncio.sleep(delay * self.backoff)
            return False, {"error": last_err}

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()
