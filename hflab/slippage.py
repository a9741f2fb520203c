"""Slippage quotes from the CoW Protocol BFF API."""

from __future__ import annotations

import json
import logging
from typing import Dict, Optional, Tuple
from urllib import error, request

logger = logging.getLogger(__name__)

COW_BFF_BASE_URL = "https://bff.cow.fi"


class CowSlippageOracle:
    """Fetch recommended slippage tolerance (bps) for a token pair.

    Successful quotes are cached per (chain, pair) for the lifetime of the oracle.  Any
    transport or payload problem yields ``None`` so callers fall back to the
    default slippage.
    """

    def __init__(self, base_url: str = COW_BFF_BASE_URL, timeout: float = 10.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._cache: Dict[Tuple[int, str, str], Optional[int]] = {}

    def url_for(self, chain_id: int, token_a: str, token_b: str) -> str:
        pair = f"{token_a.lower()}-{token_b.lower()}"
        return f"{self.base_url}/{chain_id}/markets/{pair}/slippageTolerance"

    def slippage_bps(self, chain_id: int, token_a: str, token_b: str) -> Optional[int]:
        key = (chain_id, token_a.lower(), token_b.lower())
        if key in self._cache:
            return self._cache[key]
        quote = self._fetch(chain_id, token_a, token_b)
        if quote is not None:
            self._cache[key] = quote
        return quote

    def _fetch(self, chain_id: int, token_a: str, token_b: str) -> Optional[int]:
        url = self.url_for(chain_id, token_a, token_b)
        req = request.Request(url, headers={
            "Accept": "application/json",
            "User-Agent": "HealthFactorLab/1.0",
        })
        try:
            with request.urlopen(req, timeout=self.timeout) as resp:
                payload = json.load(resp)
        except (error.URLError, OSError, ValueError) as exc:
            logger.debug("Slippage quote failed for %s: %s", url, exc)
            return None

        value = payload.get("slippageBps") if isinstance(payload, dict) else None
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            logger.debug("No slippageBps in response from %s", url)
            return None
        return int(value)
