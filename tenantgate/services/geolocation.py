"""IP address geolocation for session records."""

import ipaddress
import logging
from typing import Any, Dict, Optional

import httpx

from tenantgate.infra.config import config

logger = logging.getLogger(__name__)

LOCAL_LOCATION = {"city": "Local", "country": "Local", "country_code": "LC"}


def is_local_address(ip: str) -> bool:
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return address.is_loopback or address.is_private or address.is_link_local


def lookup_location(
    ip: str,
    enabled: Optional[bool] = None,
    url_template: Optional[str] = None,
    timeout: float = 5.0,
) -> Optional[Dict[str, Any]]:
    """
    Resolve an IP address to a coarse location.

    Loopback and private addresses map to a fixed "Local" location. Public
    addresses are looked up over HTTP only when geolocation is enabled; any
    lookup failure is logged and yields None.
    """
    if is_local_address(ip):
        return dict(LOCAL_LOCATION)

    enabled = config.GEOLOCATION_ENABLED if enabled is None else enabled
    if not enabled:
        return None

    url = (url_template or config.GEOLOCATION_URL).format(ip=ip)
    try:
        response = httpx.get(url, timeout=timeout)
        response.raise_for_status()
        data = response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("Failed to get location for IP", extra={"ip": ip, "error": str(e)})
        return None

    if data.get("status") != "success":
        return None

    return {
        "city": data.get("city"),
        "country": data.get("country"),
        "country_code": data.get("countryCode"),
        "region": data.get("regionName"),
        "timezone": data.get("timezone"),
        "lat": data.get("lat"),
        "lon": data.get("lon"),
    }
