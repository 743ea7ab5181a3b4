"""Database entity models.

All SQLAlchemy ORM models for TappHA.
"""

# Connections, events, metrics
from src.storage.entities.connection import ConnectionStatus, HAConnection
from src.storage.entities.connection_metric import ConnectionAuditLog, ConnectionMetric
from src.storage.entities.event import HAEvent
from src.storage.entities.filter_rule import EventFilterRule, RuleAction, RuleType

# AI suggestions
from src.storage.entities.ai_suggestion import (
    SUGGESTION_TRANSITIONS,
    AISuggestion,
    ApprovalDecision,
    SuggestionApproval,
    SuggestionFeedback,
    SuggestionStatus,
    SuggestionType,
)

# Automation lifecycle
from src.storage.entities.managed_automation import (
    LIFECYCLE_TRANSITIONS,
    AutomationLifecycleHistory,
    LifecycleState,
    ManagedAutomation,
)
from src.storage.entities.automation_backup import AutomationBackup, BackupType
from src.storage.entities.automation_version import AutomationVersion, ModificationType
from src.storage.entities.automation_dependency import (
    AutomationDependency,
    DependencyStrength,
    DependencyType,
)
from src.storage.entities.automation_retirement import (
    AutomationRetirement,
    RetirementStatus,
    RetirementType,
)

__all__ = [
    # Connections
    "ConnectionStatus",
    "HAConnection",
    "ConnectionAuditLog",
    "ConnectionMetric",
    "HAEvent",
    "EventFilterRule",
    "RuleAction",
    "RuleType",
    # AI suggestions
    "AISuggestion",
    "ApprovalDecision",
    "SUGGESTION_TRANSITIONS",
    "SuggestionApproval",
    "SuggestionFeedback",
    "SuggestionStatus",
    "SuggestionType",
    # Lifecycle
    "AutomationLifecycleHistory",
    "LIFECYCLE_TRANSITIONS",
    "LifecycleState",
    "ManagedAutomation",
    "AutomationBackup",
    "BackupType",
    "AutomationVersion",
    "ModificationType",
    "AutomationDependency",
    "DependencyStrength",
    "DependencyType",
    "AutomationRetirement",
    "RetirementStatus",
    "RetirementType",
]
