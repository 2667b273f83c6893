"""Extraction client boundary: one vision-model call per route screenshot."""

from __future__ import annotations

import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
import requests
from openai import APIConnectionError, APIStatusError, APITimeoutError, OpenAI, OpenAIError

from ..config import (
    load_backend,
    load_openai,
    load_openai_base_url,
    load_openai_model,
    load_openrouter,
    load_openrouter_model,
)
from ..domain.models import ExtractionResult, ImagePayload
from ..logging import get_logger
from .errors import EmptyServiceResponse, MalformedResponse, ServiceError
from .recovery import recover_json

LOG = get_logger("extraction")

EXTRACTION_PROMPT = (
    "You are a logistics assistant. Rigorously extract every package/delivery entry "
    "shown in this screenshot. Return ONLY a JSON object with the key 'stops', "
    "containing 'stopNumber', 'address', 'cep' and 'city' for each item."
)

STOP_FIELDS = ("stopNumber", "address", "cep", "city")


def stops_schema() -> Dict[str, Any]:
    """JSON schema requested from the service: {stops: [{stopNumber, address, cep, city}]}."""
    return {
        "type": "object",
        "additionalProperties": False,
        "required": ["stops"],
        "properties": {
            "stops": {
                "type": "array",
                "items": {
                    "type": "object",
                    "additionalProperties": False,
                    "required": list(STOP_FIELDS),
                    "properties": {name: {"type": "string"} for name in STOP_FIELDS},
                },
            },
        },
    }


def response_format() -> Dict[str, Any]:
    return {
        "type": "json_schema",
        "json_schema": {"name": "delivery_stops", "strict": True, "schema": stops_schema()},
    }


def candidates_from_payload(payload: Any) -> ExtractionResult:
    """Pull raw stop candidates out of a recovered payload.

    Accepts ``{"stops": [...]}`` or a bare array; a missing ``stops`` key
    yields no candidates. Entries that are not objects are skipped.
    """
    if isinstance(payload, dict):
        stops = payload.get("stops")
        if stops is None:
            LOG.warning("Payload has no 'stops' key; keys=%s", list(payload.keys()))
            return []
    else:
        stops = payload
    if not isinstance(stops, list):
        raise MalformedResponse(
            "Could not process the extraction service response.",
            {"reason": f"'stops' is {type(stops).__name__}, expected list"},
        )
    out: List[Dict[str, Any]] = []
    for idx, item in enumerate(stops):
        if not isinstance(item, dict):
            LOG.warning("stops[%d] is not an object; skipping: %r", idx, item)
            continue
        out.append(item)
    return out


class ExtractionClient(ABC):
    """Turns one image into raw stop candidates or raises an ExtractionError."""

    @abstractmethod
    def extract(self, image: ImagePayload) -> ExtractionResult:
        raise NotImplementedError

    def close(self) -> None:
        return None


class VisionExtractionClient(ExtractionClient):
    """Template for chat-style vision backends that answer with free text."""

    instruction: str = EXTRACTION_PROMPT

    @abstractmethod
    def _request_text(self, image: ImagePayload) -> Optional[str]:
        raise NotImplementedError

    def extract(self, image: ImagePayload) -> ExtractionResult:
        t0 = time.perf_counter()
        text = self._request_text(image)
        if not text or not text.strip():
            raise EmptyServiceResponse("The extraction service returned an empty response.", {"image": image.name})
        payload = recover_json(text)
        candidates = candidates_from_payload(payload)
        LOG.info("Extracted %d stop candidate(s) from %s in %.2fs", len(candidates), image.name, time.perf_counter() - t0)
        return candidates

    def _messages(self, image: ImagePayload) -> List[Dict[str, Any]]:
        return [
            {
                "role": "user",
                "content": [
                    {"type": "image_url", "image_url": {"url": image.data_url()}},
                    {"type": "text", "text": self.instruction},
                ],
            }
        ]


class OpenAIExtractionClient(VisionExtractionClient):
    """Chat Completions (vision) with a strict json_schema response format."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        base_url: Optional[str] = None,
        timeout: float = 120.0,
        client: Optional[OpenAI] = None,
    ) -> None:
        self.model = model
        self.timeout = timeout
        self._http_client: Optional[httpx.Client] = None
        if client is None:
            self._http_client = httpx.Client(
                timeout=httpx.Timeout(connect=10.0, read=timeout, write=30.0, pool=10.0),
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
            )
            client = OpenAI(api_key=api_key, base_url=base_url, http_client=self._http_client, max_retries=0)
        self.client = client

    def _request_text(self, image: ImagePayload) -> Optional[str]:
        LOG.info("Calling OpenAI Chat Completions model='%s' for %s", self.model, image.name)
        try:
            completion = self.client.chat.completions.create(
                model=self.model,
                messages=self._messages(image),
                response_format=response_format(),
                timeout=self.timeout,
            )
        except (APIConnectionError, APITimeoutError) as e:
            LOG.error("Network/timeout while calling OpenAI: %s", e)
            raise ServiceError("The extraction service could not be reached.", {"image": image.name}) from e
        except APIStatusError as e:
            body = getattr(getattr(e, "response", None), "text", None)
            LOG.error("OpenAI API returned %s. Body preview: %r", getattr(e, "status_code", "?"), (body[:300] if body else None))
            raise ServiceError(
                "The extraction service rejected the request.",
                {"image": image.name, "status_code": getattr(e, "status_code", None)},
            ) from e
        except OpenAIError as e:
            LOG.error("OpenAI extraction failed: %s", e)
            raise ServiceError("The extraction service failed.", {"image": image.name}) from e

        choices = getattr(completion, "choices", None) or []
        message = choices[0].message if choices else None
        usage = getattr(completion, "usage", None)
        LOG.debug(
            "Chat completion id=%s usage=%s",
            getattr(completion, "id", None),
            {k: getattr(usage, k, None) if usage else None for k in ("prompt_tokens", "completion_tokens", "total_tokens")},
        )
        return getattr(message, "content", None) if message is not None else None

    def close(self) -> None:
        if self._http_client is not None:
            self._http_client.close()
            self._http_client = None


@dataclass
class OpenRouterConfig:
    api_key: str
    model_name: str
    temperature: float = 0.0
    max_tokens: int = 4000
    timeout_seconds: int = 180


class OpenRouterExtractionClient(VisionExtractionClient):
    """Thin wrapper around OpenRouter chat completions via requests."""

    ENDPOINT = "https://openrouter.ai/api/v1/chat/completions"

    def __init__(self, config: OpenRouterConfig, *, session: Optional[requests.Session] = None) -> None:
        self.config = config
        self.session = session or requests.Session()

    def _request_text(self, image: ImagePayload) -> Optional[str]:
        payload = {
            "model": self.config.model_name,
            "messages": self._messages(image),
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
            "response_format": response_format(),
        }
        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }
        LOG.info("Calling OpenRouter model=%s for %s", self.config.model_name, image.name)
        try:
            resp = self.session.post(self.ENDPOINT, headers=headers, json=payload, timeout=self.config.timeout_seconds)
        except requests.RequestException as exc:
            LOG.error("OpenRouter request failed: %s", exc)
            raise ServiceError("The extraction service could not be reached.", {"image": image.name}) from exc

        if resp.status_code >= 400:
            LOG.error("OpenRouter HTTP %s: %s", resp.status_code, resp.text[:500])
            raise ServiceError(
                "The extraction service rejected the request.",
                {"image": image.name, "status_code": resp.status_code},
            )
        try:
            body = resp.json()
        except ValueError as exc:
            LOG.error("OpenRouter returned non-JSON body: %r", resp.text[:300])
            raise ServiceError("The extraction service returned an invalid envelope.", {"image": image.name}) from exc

        choices = body.get("choices") or []
        if not choices:
            LOG.error("OpenRouter returned no choices: %s", body)
            return None
        content = (choices[0].get("message") or {}).get("content")
        if isinstance(content, list):
            content = "".join(part.get("text", "") for part in content if isinstance(part, dict))
        return content

    def close(self) -> None:
        self.session.close()


def build_extraction_client(
    backend: Optional[str] = None,
    *,
    model: Optional[str] = None,
    script_dir: Optional[str] = None,
) -> ExtractionClient:
    """Create the configured extraction backend (env/.env, overridable by args)."""
    script_dir = script_dir or os.getcwd()
    backend = (backend or load_backend(script_dir)).strip().lower()
    if backend == "openrouter":
        api_key = load_openrouter(script_dir)
        if not api_key:
            raise RuntimeError("OPEN_ROUTER_API_KEY missing in env/.env; cannot run extraction")
        effective_model = model or load_openrouter_model(script_dir)
        LOG.info("Backend selected: OpenRouter (model=%s)", effective_model)
        return OpenRouterExtractionClient(OpenRouterConfig(api_key=api_key, model_name=effective_model))
    if backend != "openai":
        raise ValueError(f"Unknown extraction backend: {backend!r}")
    api_key = load_openai(script_dir)
    if not api_key:
        raise RuntimeError("OPENAI_API_KEY missing in env/.env; cannot run extraction")
    effective_model = model or load_openai_model(script_dir)
    LOG.info("Backend selected: OpenAI (model=%s)", effective_model)
    return OpenAIExtractionClient(api_key=api_key, model=effective_model, base_url=load_openai_base_url(script_dir))
