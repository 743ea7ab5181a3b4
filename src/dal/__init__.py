"""Data Access Layer for TappHA.

Repositories take an ``AsyncSession``, flush but never commit; the caller
owns the transaction.
"""

from src.dal.automations import ManagedAutomationRepository
from src.dal.backups import BackupRepository
from src.dal.connections import (
    ConnectionRepository,
    decrypt_token,
    encrypt_token,
    get_token_secret,
)
from src.dal.dependencies import DependencyRepository
from src.dal.events import EventRepository
from src.dal.filter_rules import FilterRuleRepository
from src.dal.metrics import AuditLogRepository, ConnectionMetricRepository
from src.dal.retirements import RetirementRepository
from src.dal.suggestions import SuggestionRepository
from src.dal.versions import VersionRepository

__all__ = [
    "AuditLogRepository",
    "BackupRepository",
    "ConnectionMetricRepository",
    "ConnectionRepository",
    "DependencyRepository",
    "EventRepository",
    "FilterRuleRepository",
    "ManagedAutomationRepository",
    "RetirementRepository",
    "SuggestionRepository",
    "VersionRepository",
    "decrypt_token",
    "encrypt_token",
    "get_token_secret",
]
