"""Catalog feed sync engine: field resolution, validation, feed assembly and sync orchestration."""

from feedsync.assembler import FeedAssembler
from feedsync.change_detector import ChangeDetector
from feedsync.field_catalog import CATALOG_VERSION, FIELD_CATALOG
from feedsync.orchestrator import SyncOrchestrator, SyncWorkerPool
from feedsync.resolver import FieldResolver
from feedsync.storage import InMemoryStorage, StorageBackend
from feedsync.validator import FeedValidator

__version__ = "1.0.0"

__all__ = [
    "CATALOG_VERSION",
    "FIELD_CATALOG",
    "ChangeDetector",
    "FeedAssembler",
    "FeedValidator",
    "FieldResolver",
    "InMemoryStorage",
    "StorageBackend",
    "SyncOrchestrator",
    "SyncWorkerPool",
]
