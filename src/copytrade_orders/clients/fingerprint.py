"""Outbound request fingerprints for the Binance web API."""

import random
import uuid
from typing import Dict, Optional

from ..config.settings import FingerprintConfig


BASE_HEADERS = {
    "Accept": "application/json,text/plain,*/*",
    "Accept-Language": "en-US,en;q=0.9",
    "Content-Type": "application/json",
    "Origin": "https://www.binance.com",
    "Referer": "https://www.binance.com/",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}

USER_AGENT_TEMPLATE = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/{major}.0.0.0 Safari/537.36"
)


class FingerprintProvider:
    """Produces the header set used for exactly one upstream attempt."""

    def generate(self) -> Dict[str, str]:
        raise NotImplementedError


class StaticFingerprintProvider(FingerprintProvider):
    """Fixed browser-like headers, no per-attempt variation."""

    def __init__(self, locale_cookie: Optional[str] = None):
        self.locale_cookie = locale_cookie

    def generate(self) -> Dict[str, str]:
        headers = dict(BASE_HEADERS)
        if self.locale_cookie:
            headers["Cookie"] = self.locale_cookie
        return headers


class BrowserFingerprintProvider(StaticFingerprintProvider):
    """
    Randomized browser fingerprint.

    Every call yields a different Chrome version, fresh ``bnc-uuid`` and
    ``x-ui-request-trace`` identifiers and a simulated forwarding address, so
    successive attempts do not look like the same client.
    """

    def __init__(
        self,
        chrome_major_min: int = 113,
        chrome_major_max: int = 124,
        forwarded_for_prefix: int = 45,
        locale_cookie: Optional[str] = "locale=en; country=VN",
        rng: Optional[random.Random] = None
    ):
        super().__init__(locale_cookie)
        self.chrome_major_min = chrome_major_min
        self.chrome_major_max = chrome_major_max
        self.forwarded_for_prefix = forwarded_for_prefix
        self.rng = rng or random.Random()

    def generate(self) -> Dict[str, str]:
        headers = super().generate()
        major = self.rng.randint(self.chrome_major_min, self.chrome_major_max)
        octets = ".".join(str(self.rng.randrange(200)) for _ in range(3))

        headers.update({
            "User-Agent": USER_AGENT_TEMPLATE.format(major=major),
            "bnc-uuid": str(uuid.uuid4()),
            "x-ui-request-trace": str(uuid.uuid4()),
            "X-Forwarded-For": f"{self.forwarded_for_prefix}.{octets}",
        })
        return headers


def build_fingerprint_provider(config: FingerprintConfig) -> FingerprintProvider:
    """Select the provider configured for this deployment."""
    if not config.enabled:
        return StaticFingerprintProvider(config.locale_cookie)
    return BrowserFingerprintProvider(
        chrome_major_min=config.chrome_major_min,
        chrome_major_max=config.chrome_major_max,
        forwarded_for_prefix=config.forwarded_for_prefix,
        locale_cookie=config.locale_cookie,
    )
