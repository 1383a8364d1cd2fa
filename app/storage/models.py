"""
Storage data models.
"""

from dataclasses import dataclass
from typing import Any, Dict


@dataclass
class CacheEntry:
    """Fallback map entry: serialized value plus absolute expiry (epoch seconds)."""

    value: str
    expires_at: float

    def is_expired(self, now: float) -> bool:
        """An entry is expired strictly after its expiry timestamp."""
        return now > self.expires_at


@dataclass
class SessionRecord:
    """Authenticated session keyed by an opaque token."""

    user_id: str
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        """Serialize session to dictionary (for Redis storage)."""
        return {
            "user_id": self.user_id,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionRecord":
        """Deserialize session from dictionary (for Redis storage)."""
        return cls(
            user_id=str(data["user_id"]),
            created_at=float(data["created_at"]),
            expires_at=float(data["expires_at"]),
        )
