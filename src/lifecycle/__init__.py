"""Automation lifecycle management.

Registration and state changes, backups, versions, rollback, dependency
tracking, retirement and the creation wizard with its template catalogue.
"""

from src.lifecycle.automations import AutomationLifecycleService
from src.lifecycle.backups import BackupService
from src.lifecycle.dependencies import DependencyService
from src.lifecycle.deploy import AutomationDeployer, generate_automation_id
from src.lifecycle.retirement import RetirementRequest, RetirementResult, RetirementService
from src.lifecycle.rollback import AutomationModificationResult, RollbackService
from src.lifecycle.templates import AutomationTemplate, get_template, list_templates
from src.lifecycle.versions import VersionService
from src.lifecycle.wizard import AutomationWizard, get_wizard

__all__ = [
    "AutomationDeployer",
    "AutomationLifecycleService",
    "AutomationModificationResult",
    "AutomationTemplate",
    "AutomationWizard",
    "BackupService",
    "DependencyService",
    "RetirementRequest",
    "RetirementResult",
    "RetirementService",
    "RollbackService",
    "VersionService",
    "generate_automation_id",
    "get_template",
    "get_wizard",
    "list_templates",
]
