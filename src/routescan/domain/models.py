from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Any, Dict, List


@dataclass(frozen=True)
class DeliveryStop:
    """One manifest entry recognized from a route screenshot.

    `id` only identifies the entry for listing/removal; two stops denote the
    same delivery when their stop number and address match (see reconcile).
    """

    id: str
    stop_number: str
    address: str
    cep: str
    city: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "id": self.id,
            "stopNumber": self.stop_number,
            "address": self.address,
            "cep": self.cep,
            "city": self.city,
        }


@dataclass(frozen=True)
class ImagePayload:
    """Binary image content plus its MIME type, ready for the extraction call."""

    name: str
    mime_type: str
    data: bytes

    def load(self) -> "ImagePayload":
        return self

    def b64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.b64()}"


# Raw, pre-normalization stop candidates returned by one extraction call.
ExtractionResult = List[Dict[str, Any]]
