"""
Reverse geocoding with a provider chain.

Public reverse-geocoding endpoints are individually unreliable (rate
limits, demo keys), so ``GeocodingResolver.resolve_address`` walks a fixed
list of providers and returns the first usable address.  When every
provider fails it returns a string built from the coordinates alone, so the
caller always gets something printable and never an exception.
"""

import logging
import math
from collections.abc import Mapping, Sequence
from typing import Any

import httpx

from checkin_console.core.config import settings

logger = logging.getLogger(__name__)


def _text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value).strip()


def join_address_parts(parts: Sequence[Any]) -> str:
    """Join non-empty parts with ", ", keeping order and dropping repeats."""
    cleaned: list[str] = []
    for part in parts:
        text = _text(part)
        if text and text not in cleaned:
            cleaned.append(text)
    return ", ".join(cleaned)


def _number_part(value: Any) -> str:
    text = _text(value)
    return f"nº {text}" if text else ""


def coordinate_fallback(latitude: float, longitude: float) -> str:
    """Offline, deterministic address for when every provider failed."""
    try:
        lat = float(latitude)
        lon = float(longitude)
    except (TypeError, ValueError):
        return f"Coordenadas: {latitude}, {longitude}"
    if not (math.isfinite(lat) and math.isfinite(lon)):
        return f"Coordenadas: {lat}, {lon}"
    lat_dir = "Norte" if lat >= 0 else "Sul"
    lon_dir = "Leste" if lon >= 0 else "Oeste"
    return f"Localização: {abs(lat):.4f}°{lat_dir}, {abs(lon):.4f}°{lon_dir}"


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


class GeocodingProvider:
    """One reverse-geocoding endpoint: how to ask it and how to read it."""

    name = "base"
    url = ""

    def params(self, latitude: float, longitude: float) -> dict[str, Any]:
        raise NotImplementedError

    def headers(self) -> dict[str, str]:
        return {}

    def extract(self, payload: Any) -> str:
        """Return the address found in ``payload`` or "" when it has none."""
        raise NotImplementedError


class BigDataCloudProvider(GeocodingProvider):
    name = "bigdatacloud"

    def __init__(self, url: str | None = None, language: str | None = None) -> None:
        self.url = url or settings.BIGDATACLOUD_URL
        self.language = language or settings.GEOCODING_LANGUAGE

    def params(self, latitude: float, longitude: float) -> dict[str, Any]:
        return {"latitude": latitude, "longitude": longitude, "localityLanguage": self.language}

    def extract(self, payload: Any) -> str:
        if not isinstance(payload, Mapping):
            return ""
        return join_address_parts([
            payload.get("street"),
            _number_part(payload.get("streetNumber")),
            payload.get("neighbourhood"),
            payload.get("district"),
            payload.get("locality"),
            payload.get("city"),
            payload.get("principalSubdivision"),
            payload.get("countryName"),
        ])


class PositionstackProvider(GeocodingProvider):
    name = "positionstack"

    def __init__(self, api_key: str, url: str | None = None) -> None:
        self.api_key = api_key
        self.url = url or settings.POSITIONSTACK_URL

    def params(self, latitude: float, longitude: float) -> dict[str, Any]:
        return {
            "access_key": self.api_key,
            "query": f"{latitude},{longitude}",
            "limit": 1,
            "output": "json",
        }

    def extract(self, payload: Any) -> str:
        if not isinstance(payload, Mapping):
            return ""
        data = payload.get("data")
        if not isinstance(data, list) or not data or not isinstance(data[0], Mapping):
            return ""
        place = data[0]
        return join_address_parts([
            place.get("street"),
            _number_part(place.get("number")),
            place.get("neighbourhood"),
            place.get("county"),
            place.get("locality"),
            place.get("region"),
            place.get("country"),
        ])


class OpenCageProvider(GeocodingProvider):
    name = "opencage"

    def __init__(self, api_key: str, url: str | None = None, language: str | None = None) -> None:
        self.api_key = api_key
        self.url = url or settings.OPENCAGE_URL
        self.language = language or settings.GEOCODING_LANGUAGE

    def params(self, latitude: float, longitude: float) -> dict[str, Any]:
        return {
            "q": f"{latitude},{longitude}",
            "key": self.api_key,
            "language": self.language,
            "no_annotations": 1,
        }

    def extract(self, payload: Any) -> str:
        if not isinstance(payload, Mapping):
            return ""
        results = payload.get("results")
        if not isinstance(results, list) or not results or not isinstance(results[0], Mapping):
            return ""
        result = results[0]
        formatted = _text(result.get("formatted"))
        if formatted:
            return formatted
        components = result.get("components")
        if not isinstance(components, Mapping):
            return ""
        return join_address_parts([
            components.get("road"),
            _number_part(components.get("house_number")),
            components.get("neighbourhood"),
            components.get("suburb"),
            components.get("city_district"),
            components.get("city") or components.get("town") or components.get("village"),
            components.get("state"),
            components.get("country"),
        ])


class NominatimProvider(GeocodingProvider):
    name = "nominatim"

    def __init__(self, url: str | None = None, language: str | None = None) -> None:
        self.url = url or settings.NOMINATIM_URL
        self.language = language or settings.GEOCODING_LANGUAGE

    def params(self, latitude: float, longitude: float) -> dict[str, Any]:
        return {
            "format": "json",
            "lat": latitude,
            "lon": longitude,
            "zoom": 18,
            "addressdetails": 1,
            "accept-language": self.language,
        }

    def headers(self) -> dict[str, str]:
        # Nominatim usage policy requires an identifying User-Agent
        return {"User-Agent": settings.GEOCODING_USER_AGENT}

    def extract(self, payload: Any) -> str:
        if not isinstance(payload, Mapping):
            return ""
        display_name = _text(payload.get("display_name"))
        if display_name:
            return display_name
        address = payload.get("address")
        if not isinstance(address, Mapping):
            return ""
        return join_address_parts([
            address.get("road"),
            _number_part(address.get("house_number")),
            address.get("neighbourhood") or address.get("suburb"),
            address.get("city_district"),
            address.get("city") or address.get("town") or address.get("village"),
            address.get("state"),
            address.get("country"),
        ])


def build_providers(names: Sequence[str] | None = None) -> list[GeocodingProvider]:
    """Instantiate providers in the configured order, skipping keyless ones."""
    providers: list[GeocodingProvider] = []
    for name in names if names is not None else settings.GEOCODING_PROVIDERS:
        key = name.strip().lower()
        if key == "bigdatacloud":
            providers.append(BigDataCloudProvider())
        elif key == "positionstack":
            if settings.POSITIONSTACK_API_KEY:
                providers.append(PositionstackProvider(settings.POSITIONSTACK_API_KEY))
            else:
                logger.info("Positionstack disabled: POSITIONSTACK_API_KEY not set")
        elif key == "opencage":
            if settings.OPENCAGE_API_KEY:
                providers.append(OpenCageProvider(settings.OPENCAGE_API_KEY))
            else:
                logger.info("OpenCage disabled: OPENCAGE_API_KEY not set")
        elif key == "nominatim":
            providers.append(NominatimProvider())
        else:
            logger.warning("Unknown geocoding provider '%s' ignored", name)
    return providers


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class GeocodingResolver:
    """
    Walks the provider chain for one coordinate pair.

    The underlying ``httpx.AsyncClient`` is created lazily and shared by all
    lookups; call ``aclose()`` on shutdown.  Pass ``transport`` (for example
    an ``httpx.MockTransport``) to replace the network in tests.
    """

    def __init__(
        self,
        providers: Sequence[GeocodingProvider] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float | None = None,
        enabled: bool | None = None,
    ) -> None:
        self.providers = list(providers) if providers is not None else build_providers()
        self._transport = transport
        self._timeout = timeout if timeout is not None else settings.GEOCODING_TIMEOUT_SEC
        self.enabled = settings.GEOCODING_ENABLED if enabled is None else enabled
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _ask(self, provider: GeocodingProvider, latitude: float, longitude: float) -> str:
        resp = await self._get_client().get(
            provider.url,
            params=provider.params(latitude, longitude),
            headers=provider.headers(),
        )
        resp.raise_for_status()
        return provider.extract(resp.json())

    async def resolve_address(self, latitude: float, longitude: float) -> str:
        """Address for the coordinates; falls back to a coordinate string, never raises."""
        try:
            lat, lon = float(latitude), float(longitude)
        except (TypeError, ValueError):
            return coordinate_fallback(latitude, longitude)
        if not (math.isfinite(lat) and math.isfinite(lon)) or not self.enabled:
            return coordinate_fallback(lat, lon)

        for provider in self.providers:
            try:
                address = await self._ask(provider, lat, lon)
            # InvalidURL is not an HTTPError; RuntimeError comes from a client closed at shutdown
            except (httpx.HTTPError, httpx.InvalidURL, RuntimeError, ValueError) as exc:
                logger.warning("Geocoding provider %s failed for (%s, %s): %s", provider.name, lat, lon, exc)
                continue
            if address:
                return address
            logger.info("Geocoding provider %s returned no address for (%s, %s)", provider.name, lat, lon)

        logger.warning("Todos os provedores de geocodificação falharam para (%s, %s); usando coordenadas", lat, lon)
        return coordinate_fallback(lat, lon)


_resolver: GeocodingResolver | None = None


def get_geocoding_resolver() -> GeocodingResolver:
    """Process-wide resolver; its HTTP client is shared by every report."""
    global _resolver
    if _resolver is None:
        _resolver = GeocodingResolver()
    return _resolver


async def close_geocoding_resolver() -> None:
    global _resolver
    if _resolver is not None:
        await _resolver.aclose()
        _resolver = None
