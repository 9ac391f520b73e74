"""
Particl node RPC client.

Thin async JSON-RPC client for the two calls the collector needs:
getstakinginfo (wallet scoped) and getblockheader.
"""

import asyncio
import itertools
from typing import Any, Optional, Sequence

import aiohttp
import structlog

from stakingstat.core.config import Settings, ParticlConfig
from stakingstat.core.exceptions import InputFetchError, BlockNotFoundError
from stakingstat.services.rewards.types import StakingInfo, BlockHeader


logger = structlog.get_logger(__name__)

# particld error code for an unknown block hash
RPC_INVALID_ADDRESS_OR_KEY = -5


class ParticlRpcClient:
    """
    Async Particl RPC client.

    Any failure (node unreachable, auth failure, RPC error, malformed reply)
    is raised as InputFetchError.
    """

    def __init__(
        self,
        url: str,
        user: str,
        password: str,
        wallet: str = "",
        timeout: int = 30,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.url = url.rstrip("/") + "/"
        self.wallet = wallet
        self._auth = aiohttp.BasicAuth(user, password)
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None
        self._ids = itertools.count(1)
        self.logger = logger.bind(service="particl_rpc")

    @classmethod
    def from_settings(cls, config: Settings) -> "ParticlRpcClient":
        user, password = ParticlConfig.get_credentials(config)
        return cls(
            url=ParticlConfig.get_rpc_url(config),
            user=user,
            password=password,
            wallet=config.particld_staking_wallet,
            timeout=config.rpc_timeout,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    def _endpoint(self, wallet: Optional[str]) -> str:
        if wallet:
            return f"{self.url}wallet/{wallet}"
        return self.url

    async def call(self, method: str, params: Sequence[Any] = (), wallet: Optional[str] = None) -> Any:
        """
        Perform one JSON-RPC call and return its result member.

        Raises:
            InputFetchError: on transport, HTTP, decoding or RPC errors
        """
        payload = {
            "jsonrpc": "1.0",
            "id": next(self._ids),
            "method": method,
            "params": list(params),
        }
        details = {"method": method, "wallet": wallet or ""}

        try:
            async with self._get_session().post(
                self._endpoint(wallet), json=payload, auth=self._auth
            ) as response:
                if response.status in (401, 403):
                    raise InputFetchError(
                        f"RPC {method} rejected: authentication failed",
                        {**details, "status": response.status}
                    )
                # particld reports RPC errors with HTTP 404/500 and a JSON body
                try:
                    body = await response.json(content_type=None)
                except ValueError as e:
                    raise InputFetchError(
                        f"RPC {method} returned a non-JSON reply (HTTP {response.status}): {e}",
                        {**details, "status": response.status}
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.error("RPC call failed", method=method, error=str(e))
            raise InputFetchError(f"RPC {method} failed: {e}", details)

        if not isinstance(body, dict):
            raise InputFetchError(f"RPC {method} returned an unexpected reply", details)

        error = body.get("error")
        if error:
            self.logger.error("RPC returned error", method=method, error=error)
            code = error.get("code") if isinstance(error, dict) else None
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise InputFetchError(
                f"RPC {method} failed: {message}",
                {**details, "rpc_code": code}
            )

        return body.get("result")

    async def get_staking_info(self) -> StakingInfo:
        """Fetch chain-wide staking statistics for the staking wallet."""
        result = await self.call("getstakinginfo", wallet=self.wallet)
        if not isinstance(result, dict):
            raise InputFetchError("RPC getstakinginfo returned no result", {"method": "getstakinginfo"})
        return StakingInfo.from_rpc(result)

    async def get_block_header(self, block_hash: str) -> BlockHeader:
        """Fetch the header of a block by its hex hash."""
        try:
            result = await self.call("getblockheader", [block_hash])
        except InputFetchError as e:
            if e.details.get("rpc_code") == RPC_INVALID_ADDRESS_OR_KEY:
                raise BlockNotFoundError(block_hash)
            raise
        if not isinstance(result, dict):
            raise InputFetchError(
                "RPC getblockheader returned no result",
                {"method": "getblockheader", "block_hash": block_hash}
            )
        return BlockHeader.from_rpc(result)
