"""ReliefLine service layer -- state store, backend client, WhatsApp transport,
duplicate detection and disaster monitoring.
"""

from __future__ import annotations

from src.services.backend_client import ApiResult, BackendClient
from src.services.duplicates import (
    DuplicateGroup,
    DuplicateMatch,
    group_duplicates,
    haversine_km,
    pair_score,
    probability_label,
)
from src.services.monitor import DisasterMonitor
from src.services.store import (
    ConversationStore,
    InMemoryStoreBackend,
    KeyValueStore,
    RedisStoreBackend,
    SessionStore,
)
from src.services.whatsapp import WhatsAppClient

__all__ = [
    "ApiResult",
    "BackendClient",
    "ConversationStore",
    "DisasterMonitor",
    "DuplicateGroup",
    "DuplicateMatch",
    "InMemoryStoreBackend",
    "KeyValueStore",
    "RedisStoreBackend",
    "SessionStore",
    "WhatsAppClient",
    "group_duplicates",
    "haversine_km",
    "pair_score",
    "probability_label",
]
