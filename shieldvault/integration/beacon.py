"""
drand beacon client and round arithmetic.

Round `r` is published at `genesis_time + r * period_s`.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Optional

import requests

from ..config import BeaconConfig
from ..errors import BeaconError
from ..state.canonical import hex_to_bytes


logger = logging.getLogger(__name__)

# drand answers not-yet-published rounds with one of these.
_LOCKED_STATUSES = frozenset({404, 425})


def round_for_timestamp(ts: int, config: BeaconConfig) -> int:
    """First round published at or after `ts`; 0 before genesis."""
    if ts < config.genesis_time:
        return 0
    return -(-(ts - config.genesis_time) // config.period_s)


def timestamp_for_round(round_: int, config: BeaconConfig) -> int:
    return config.genesis_time + round_ * config.period_s


def current_round(config: BeaconConfig, now: Optional[float] = None) -> int:
    t = int(time.time() if now is None else now)
    if t < config.genesis_time:
        return 0
    return (t - config.genesis_time) // config.period_s


def minimum_round(offset_s: int, config: BeaconConfig, now: Optional[float] = None) -> int:
    """Earliest round at least `offset_s` seconds from now."""
    t = int(time.time() if now is None else now)
    return round_for_timestamp(t + int(offset_s), config)


def is_round_available(round_: int, config: BeaconConfig, now: Optional[float] = None) -> bool:
    return current_round(config, now) >= round_


class DrandBeacon:
    def __init__(self, config: BeaconConfig, session: Optional[Any] = None) -> None:
        self.config = config
        self._session = session if session is not None else requests.Session()

    def round_url(self, round_: int) -> str:
        base = self.config.base_url.rstrip("/")
        return f"{base}/v2/beacons/{self.config.beacon_id}/rounds/{int(round_)}"

    def fetch_signature(self, round_: int) -> Optional[bytes]:
        """Signature bytes for `round_`, or None while the round is still locked."""
        if not isinstance(round_, int) or isinstance(round_, bool) or round_ <= 0:
            raise ValueError("round must be a positive int")
        url = self.round_url(round_)
        try:
            r = self._session.get(url, timeout=self.config.timeout_s)
        except requests.RequestException as exc:
            raise BeaconError(f"drand request failed for round {round_}: {exc}") from exc
        if r.status_code in _LOCKED_STATUSES:
            logger.debug("drand round %d not yet available", round_)
            return None
        if r.status_code != 200:
            raise BeaconError(f"drand round {round_}: HTTP {r.status_code}")
        try:
            body = r.json()
        except ValueError as exc:
            raise BeaconError(f"drand round {round_}: invalid JSON") from exc
        sig = body.get("signature") if isinstance(body, dict) else None
        if not isinstance(sig, str) or not sig:
            raise BeaconError(f"drand round {round_}: missing signature")
        try:
            return hex_to_bytes(sig, name="signature")
        except ValueError as exc:
            raise BeaconError(f"drand round {round_}: {exc}") from exc
