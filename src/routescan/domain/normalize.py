from __future__ import annotations

import itertools
import re
import threading
import time
import uuid
from collections.abc import Mapping
from typing import Any, Iterable, List, Optional

from ..logging import get_logger
from .models import DeliveryStop

_LOG = get_logger("normalize")

_NON_DIGITS = re.compile(r"\D")

# Process-wide so that two generators never hand out the same sequence value.
_SEQUENCE = itertools.count(1)
_SEQUENCE_LOCK = threading.Lock()


class StopIdGenerator:
    """Generate opaque stop ids: ``s-<epoch-ms>-<sequence>-<nonce>``.

    The sequence is shared across the process and the nonce is drawn once per
    generator, so ids stay unique within a run even when the clock stalls.
    """

    def __init__(self, nonce: Optional[str] = None) -> None:
        self.nonce = nonce or uuid.uuid4().hex[:6]

    def __call__(self) -> str:
        with _SEQUENCE_LOCK:
            seq = next(_SEQUENCE)
        return f"s-{int(time.time() * 1000)}-{seq}-{self.nonce}"


_DEFAULT_IDS = StopIdGenerator()


def normalize_cep(value: Any) -> str:
    """Normalize a Brazilian postal code.

    Strips every non-digit; exactly 8 digits become ``NNNNN-NNN``, anything
    else is returned as the bare digit string (possibly empty).
    """
    if value is None:
        return ""
    digits = _NON_DIGITS.sub("", str(value))
    if len(digits) == 8:
        return f"{digits[:5]}-{digits[5:]}"
    return digits


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(value)


def normalize_stop(raw: Any, *, ids: Optional[StopIdGenerator] = None) -> DeliveryStop:
    """Build a DeliveryStop from one raw candidate record. Never raises."""
    if not isinstance(raw, Mapping):
        _LOG.debug("Non-mapping stop candidate treated as empty: %r", raw)
        raw = {}
    new_id = (ids or _DEFAULT_IDS)()
    return DeliveryStop(
        id=new_id,
        stop_number=_text(raw.get("stopNumber")),
        address=_text(raw.get("address")),
        cep=normalize_cep(raw.get("cep")),
        city=_text(raw.get("city")),
    )


def normalize_stops(raws: Iterable[Any], *, ids: Optional[StopIdGenerator] = None) -> List[DeliveryStop]:
    return [normalize_stop(r, ids=ids) for r in raws]
