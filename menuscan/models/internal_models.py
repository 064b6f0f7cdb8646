"""
Internal data models and enums for the menu scan backend.

This module contains internal data structures passed between pipeline
stages: the intake payload, model request descriptions, price normalization
results and dish image cache entries.
"""

import base64
import json
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from menuscan.models.api_models import SupportedLanguage


@dataclass(frozen=True)
class IntakePayload:
    """Validated upload, ready for prompt construction"""
    image_bytes: bytes
    content_type: str
    size_bytes: int
    target_language: SupportedLanguage
    image_format: Optional[str] = None  # as detected by Pillow, None when unidentifiable

    @property
    def data_url(self) -> str:
        """Base64 ``data:`` URL used as the image reference in the model request"""
        encoded = base64.b64encode(self.image_bytes).decode("ascii")
        return f"data:{self.content_type};base64,{encoded}"


@dataclass
class ModelRequest:
    """A chat completion request, independent of the HTTP client that sends it"""
    operation: str
    model: str
    messages: List[Dict[str, Any]]
    json_output: bool = True
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"model": self.model, "messages": self.messages}
        if self.json_output:
            payload["response_format"] = {"type": "json_object"}
        if self.temperature is not None:
            payload["temperature"] = self.temperature
        if self.max_tokens is not None:
            payload["max_tokens"] = self.max_tokens
        return payload


@dataclass(frozen=True)
class PriceInfo:
    """Result of price normalization; only ``raw`` is kept on the menu item"""
    raw: str
    currency_symbol: Optional[str] = None
    amount: Optional[Decimal] = None


class CacheStatus(str, Enum):
    """Lifecycle of a dish image cache entry"""
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


@dataclass
class DishImageCacheEntry:
    """One cache slot; ``expires_at`` is unset while pending"""
    key: str
    status: CacheStatus
    created_at: float
    last_accessed_at: float
    url: Optional[str] = None
    error: Optional[str] = None
    expires_at: Optional[float] = None

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at

    @property
    def is_terminal(self) -> bool:
        return self.status in (CacheStatus.READY, CacheStatus.FAILED)

    def to_json(self) -> str:
        """Serialize a terminal entry for the shared store"""
        return json.dumps({
            "status": self.status.value,
            "url": self.url,
            "error": self.error,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
        })

    @classmethod
    def from_json(cls, key: str, raw: str, now: float) -> Optional["DishImageCacheEntry"]:
        """Rebuild an entry read from the shared store; None when unusable"""
        try:
            data = json.loads(raw)
            status = CacheStatus(data["status"])
        except (ValueError, KeyError, TypeError):
            return None
        if status == CacheStatus.PENDING:
            return None
        if status == CacheStatus.READY and not data.get("url"):
            return None
        return cls(
            key=key,
            status=status,
            created_at=float(data.get("created_at") or now),
            last_accessed_at=now,
            url=data.get("url"),
            error=data.get("error"),
            expires_at=data.get("expires_at"),
        )


@dataclass
class CacheStats:
    """Counters exposed on the health endpoint"""
    hits: int = 0
    misses: int = 0
    coalesced: int = 0
    negative_hits: int = 0
    generations: int = 0
    failures: int = 0
    evictions: int = 0
    expirations: int = 0
    store_hits: int = 0
    extra: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        data = {
            "hits": self.hits,
            "misses": self.misses,
            "coalesced": self.coalesced,
            "negative_hits": self.negative_hits,
            "generations": self.generations,
            "failures": self.failures,
            "evictions": self.evictions,
            "expirations": self.expirations,
            "store_hits": self.store_hits,
        }
        data.update(self.extra)
        return data
