"""
Kakao local search client for address geocoding.

API Documentation: https://developers.kakao.com/docs/latest/en/local/dev-guide
"""

import logging

import httpx

from .config import GeocoderConfig
from .errors import ExternalServiceError
from .models import GeocodeFound, GeocodeNotFound, GeocodeResult

logger = logging.getLogger(__name__)

KAKAO_API_BASE = "https://dapi.kakao.com"


class KakaoGeocoder:
    """Resolve free-text addresses to decimal-degree coordinates."""

    def __init__(
        self,
        api_key: str | None,
        api_base: str = KAKAO_API_BASE,
        timeout_seconds: float = 10.0,
    ):
        self.api_key = api_key
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout_seconds

    @classmethod
    def from_config(cls, config: GeocoderConfig) -> "KakaoGeocoder":
        return cls(
            api_key=config.get_api_key(),
            api_base=config.api_base,
            timeout_seconds=config.timeout_seconds,
        )

    async def geocode(self, address: str) -> GeocodeResult:
        """
        Look up an address.

        Args:
            address: Free-text address

        Returns:
            GeocodeFound with the first match, or GeocodeNotFound

        Raises:
            ExternalServiceError: missing API key, network error or non-2xx reply
        """
        if not self.api_key:
            raise ExternalServiceError("geocoder", "KAKAO_API_KEY is not configured")

        url = f"{self.api_base}/v2/local/search/address.json"
        logger.debug(f"Geocoding address: {address}")

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.get(
                    url,
                    params={"query": address},
                    headers={"Authorization": f"KakaoAK {self.api_key}"},
                )
                response.raise_for_status()
                data = response.json()
            except (httpx.HTTPError, ValueError) as e:
                raise ExternalServiceError("geocoder", f"lookup failed: {e}") from e

        documents = data.get("documents") or []
        if not documents:
            logger.debug(f"No geocoding result for: {address}")
            return GeocodeNotFound()

        first = documents[0]
        try:
            return GeocodeFound(latitude=float(first["y"]), longitude=float(first["x"]))
        except (KeyError, TypeError, ValueError) as e:
            raise ExternalServiceError("geocoder", f"malformed result: {e}") from e
