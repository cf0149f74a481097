"""External service integrations."""

from .vin_decoder import VinDecodeResult, VinDecoderClient, nhtsa_decoder_url

__all__ = ["VinDecodeResult", "VinDecoderClient", "nhtsa_decoder_url"]
