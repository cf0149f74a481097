from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
import structlog

from ..config.settings import Settings, get_settings
from ..schemas.intake import VIN_LENGTH, sanitize_vin

logger = structlog.get_logger()

NHTSA_DECODER_PAGE = "https://vpic.nhtsa.dot.gov/decoder/Decoder"


@dataclass(frozen=True)
class VinDecodeResult:
    ok: bool
    message: str


def nhtsa_decoder_url(vin: str) -> str:
    """Link to the NHTSA decoder page for a VIN."""
    return f"{NHTSA_DECODER_PAGE}?VIN={quote(sanitize_vin(vin), safe='')}"


def _describe(payload: Dict[str, Any]) -> str:
    results = payload.get("Results") if isinstance(payload, dict) else None
    first = results[0] if isinstance(results, list) and results else {}
    if not isinstance(first, dict):
        first = {}
    parts = [first.get("ModelYear") or "", first.get("Make") or "", first.get("Model") or ""]
    text = " ".join(str(p) for p in parts).strip()
    return " ".join(text.split()) or "Decoded (partial)"


class VinDecoderClient:
    """Client for the NHTSA vPIC VIN decoding API."""

    def __init__(self,
                 settings: Optional[Settings] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings or get_settings()
        self.base_url = self.settings.vin_decoder_url.rstrip("/")
        self.timeout = httpx.Timeout(self.settings.vin_decoder_timeout)
        self.transport = transport

    def _url(self, vin: str) -> str:
        return f"{self.base_url}/{quote(vin, safe='')}"

    async def decode(self, vin: str) -> VinDecodeResult:
        """
        Decode a VIN into ``"<year> <make> <model>"``.

        Args:
            vin: Raw VIN as typed; it is sanitized first

        Returns:
            VinDecodeResult; ``ok`` is False for malformed VINs and network errors
        """
        v = sanitize_vin(vin)
        if len(v) != VIN_LENGTH:
            return VinDecodeResult(ok=False, message=f"VIN must be {VIN_LENGTH} characters")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(self._url(v), params={"format": "json"})
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as e:
            logger.error("VIN decoder API error",
                         vin=v,
                         status_code=e.response.status_code,
                         error=str(e))
            return VinDecodeResult(ok=False, message="Network error decoding VIN")
        except httpx.RequestError as e:
            logger.error("VIN decoder connection error", vin=v, error=str(e))
            return VinDecodeResult(ok=False, message="Network error decoding VIN")
        except ValueError as e:
            logger.error("VIN decoder returned invalid JSON", vin=v, error=str(e))
            return VinDecodeResult(ok=False, message="Network error decoding VIN")

        message = _describe(payload)
        logger.info("VIN decoded", vin=v, decoded=message)
        return VinDecodeResult(ok=True, message=message)
