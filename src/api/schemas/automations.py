"""Automation lifecycle API schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.storage.entities.automation_backup import BackupType
from src.storage.entities.automation_dependency import DependencyStrength, DependencyType
from src.storage.entities.automation_retirement import RetirementStatus, RetirementType
from src.storage.entities.automation_version import ModificationType
from src.storage.entities.managed_automation import LifecycleState


class RegisterAutomationRequest(BaseModel):
    """Put an existing HA automation under lifecycle management."""

    connection_id: str
    ha_automation_id: str = Field(..., min_length=1, max_length=255)
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    backup: bool = Field(True, description="Take an initial FULL backup and version from HA")


class ManagedAutomationResponse(BaseModel):
    id: str
    connection_id: str
    ha_automation_id: str
    name: str
    description: str | None = None
    lifecycle_state: LifecycleState
    version: int
    is_active: bool
    execution_count: int
    last_execution_at: datetime | None = None
    created_by: str | None = None
    modified_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class TransitionRequest(BaseModel):
    reason: str | None = Field(None, max_length=2000)


class LifecycleHistoryResponse(BaseModel):
    id: str
    managed_automation_id: str
    previous_state: str | None = None
    new_state: str
    transition_reason: str | None = None
    transitioned_by: str | None = None
    transition_timestamp: datetime
    metadata: dict[str, Any] | None = Field(None, validation_alias="metadata_")

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class BackupRequest(BaseModel):
    description: str | None = Field(None, max_length=2000)
    backup_type: BackupType = BackupType.MANUAL


class BackupResponse(BaseModel):
    id: str
    managed_automation_id: str
    connection_id: str
    backup_type: BackupType
    description: str | None = None
    backup_data: dict[str, Any]
    size_bytes: int
    checksum: str
    created_by: str | None = None
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class VersionResponse(BaseModel):
    id: str
    managed_automation_id: str
    backup_id: str | None = None
    previous_version_id: str | None = None
    version_number: str
    modification_type: ModificationType
    description: str | None = None
    created_by: str | None = None
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class VersionComparison(BaseModel):
    version_a: str
    version_b: str
    modification_type_changed: bool
    description_changed: bool
    time_difference_seconds: float | None = None
    data_changes: dict[str, Any]


class VersionStatistics(BaseModel):
    total_versions: int
    latest_version: str | None = None
    first_version: str | None = None
    last_modified: datetime | None = None
    by_modification_type: dict[str, int]


class RollbackRequest(BaseModel):
    target_version_id: str


class ModificationResultResponse(BaseModel):
    success: bool
    modification_type: str
    backup_id: str | None = None
    version_id: str | None = None
    errors: list[str] = Field(default_factory=list)


class DependencyCreate(BaseModel):
    """``source`` (this automation) depends on ``target``."""

    target_automation_id: str
    dependency_type: DependencyType
    strength: DependencyStrength
    description: str | None = Field(None, max_length=500)


class DependencyResponse(BaseModel):
    id: str
    connection_id: str
    source_automation_id: str
    target_automation_id: str
    dependency_type: DependencyType
    strength: DependencyStrength
    description: str | None = None
    active: bool
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class RetirementRequestBody(BaseModel):
    retirement_type: RetirementType = RetirementType.IMMEDIATE
    reason: str = Field(..., max_length=2000)
    force: bool = False
    scheduled_at: datetime | None = None
    create_replacement: bool = False
    replacement_config: dict[str, Any] | None = None
    metadata: dict[str, Any] | None = None


class RetirementRecordResponse(BaseModel):
    id: str
    managed_automation_id: str
    requested_by: str
    retirement_type: RetirementType
    status: RetirementStatus
    reason: str
    force: bool
    scheduled_at: datetime | None = None
    completed_at: datetime | None = None
    backup_id: str | None = None
    replacement_automation_id: str | None = None
    resolved_dependencies: list[str] | None = None
    error: str | None = None
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class RetirementResponse(BaseModel):
    success: bool
    retirement: RetirementRecordResponse | None = None
    errors: list[str] = Field(default_factory=list)
    blocking_dependencies: list[str] = Field(default_factory=list)
    replacement_automation_id: str | None = None


class DueRetirementsResponse(BaseModel):
    completed: int
    failed: int
