"""
Storage subsystem for assessment records.
"""

from ..config.settings import StorageConfig
from .assessments import AssessmentRecord, AssessmentStore, LocalStore
from .sql import SQLStore


def create_store(config: StorageConfig) -> AssessmentStore:
    """Build the store selected by ``config.backend``."""
    if config.backend == "sql":
        return SQLStore(config.database_url)
    return LocalStore(config.root)


__all__ = [
    "AssessmentRecord",
    "AssessmentStore",
    "LocalStore",
    "SQLStore",
    "create_store",
]
