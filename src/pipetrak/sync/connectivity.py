"""Online/offline detection with transition callbacks."""

import logging
from typing import Callable, Optional

import httpx

logger = logging.getLogger(__name__)

Probe = Callable[[], bool]


def http_probe(url: str, timeout: float = 5.0,
               http_client: httpx.Client | None = None) -> Probe:
    """Build a probe that is online whenever ``url`` answers at all.

    Any HTTP response, even an error status, proves the network path
    works; only transport failures count as offline.
    """
    client = http_client or httpx.Client(timeout=timeout)

    def probe() -> bool:
        try:
            client.head(url)
            return True
        except httpx.TransportError as e:
            logger.debug("Connectivity probe to %s failed: %s", url, e)
            return False

    return probe


class ConnectivityMonitor:
    """Tracks the last known network state and reports transitions."""

    def __init__(self, probe: Probe,
                 on_online: Optional[Callable[[], None]] = None,
                 on_offline: Optional[Callable[[], None]] = None,
                 initially_online: bool = True):
        self.probe = probe
        self.on_online = on_online
        self.on_offline = on_offline
        self.is_online = initially_online

    def check(self) -> bool:
        """Run the probe once; fire a callback only if the state flipped."""
        online = bool(self.probe())
        if online == self.is_online:
            return online

        self.is_online = online
        if online:
            logger.info("Connection restored")
            if self.on_online:
                self.on_online()
        else:
            logger.info("Connection lost, edits will be queued")
            if self.on_offline:
                self.on_offline()
        return online
