"""
Caller public IP detection.

The deploy command authorizes inbound administrative access for the caller's
current address. Lookup services are tried in order and the first valid IPv4
answer wins; if none answers, the open range is returned with a warning.
"""

import ipaddress
import logging
from typing import Optional, Sequence

import requests

logger = logging.getLogger(__name__)

IP_LOOKUP_ENDPOINTS = (
    "https://checkip.amazonaws.com",
    "https://api.ipify.org",
    "https://ifconfig.me/ip",
    "https://icanhazip.com",
)
CONNECT_TIMEOUT = 5
READ_TIMEOUT = 5
HOST_MASK = "/32"
OPEN_CIDR = "0.0.0.0/0"


def is_ipv4(text: str) -> bool:
    """True for a dotted-quad IPv4 address and nothing else."""
    if text.count(".") != 3:
        return False
    try:
        ipaddress.IPv4Address(text)
    except ValueError:
        return False
    return True


def fetch_public_ip(url: str, timeout=(CONNECT_TIMEOUT, READ_TIMEOUT)) -> Optional[str]:
    """Ask one lookup service for the caller's address.

    Returns:
        The address, or None if the service failed or answered garbage
    """
    try:
        response = requests.get(url, timeout=timeout)
    except requests.RequestException as e:
        logger.debug(f"IP lookup via {url} failed: {e}")
        return None

    if not response.ok:
        logger.debug(f"IP lookup via {url} returned HTTP {response.status_code}")
        return None

    candidate = response.text.strip()
    if not is_ipv4(candidate):
        logger.debug(f"IP lookup via {url} returned invalid address: {candidate!r}")
        return None
    return candidate


def resolve_caller_cidr(
    endpoints: Sequence[str] = IP_LOOKUP_ENDPOINTS,
    timeout=(CONNECT_TIMEOUT, READ_TIMEOUT),
) -> str:
    """Return "<caller ip>/32", or 0.0.0.0/0 when no service answered."""
    for url in endpoints:
        address = fetch_public_ip(url, timeout=timeout)
        if address:
            logger.info(f"Detected public IP {address} via {url}")
            return address + HOST_MASK

    logger.warning(
        f"Could not detect public IP from {len(endpoints)} service(s); "
        f"falling back to {OPEN_CIDR}. This is NOT safe for production."
    )
    return OPEN_CIDR
