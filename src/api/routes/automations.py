"""Automation lifecycle routes.

Managed automations with their state history, backups, versions,
rollback, dependencies and retirement. Every automation is reached
through a connection owned by the caller.
"""

from typing import Any

from fastapi import APIRouter, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.deps import CurrentUser, DBSession
from src.api.schemas import Page
from src.api.schemas.automations import (
    BackupRequest,
    BackupResponse,
    DependencyCreate,
    DependencyResponse,
    DueRetirementsResponse,
    LifecycleHistoryResponse,
    ManagedAutomationResponse,
    ModificationResultResponse,
    RegisterAutomationRequest,
    RetirementRecordResponse,
    RetirementRequestBody,
    RetirementResponse,
    RollbackRequest,
    TransitionRequest,
    VersionComparison,
    VersionResponse,
    VersionStatistics,
)
from src.exceptions import NotFoundError
from src.lifecycle import (
    AutomationLifecycleService,
    BackupService,
    DependencyService,
    RetirementRequest,
    RetirementService,
    RollbackService,
    VersionService,
)
from src.lifecycle.dependencies import DEFAULT_GRAPH_DEPTH
from src.services.connections import page
from src.storage.entities.automation_backup import AutomationBackup, BackupType
from src.storage.entities.automation_version import AutomationVersion, ModificationType
from src.storage.entities.managed_automation import LifecycleState, ManagedAutomation

router = APIRouter(prefix="/automations", tags=["Automation Lifecycle"])


async def _owned(session: AsyncSession, automation_id: str, user: str) -> ManagedAutomation:
    return await AutomationLifecycleService(session).get(automation_id, user)


async def _owned_backup(
    service: BackupService, automation: ManagedAutomation, backup_id: str
) -> AutomationBackup:
    backup = await service.get(backup_id)
    if backup.managed_automation_id != automation.id:
        raise NotFoundError("Backup", backup_id)
    return backup


async def _owned_version(
    service: VersionService, automation: ManagedAutomation, version_id: str
) -> AutomationVersion:
    version = await service.get_version(version_id)
    if version.managed_automation_id != automation.id:
        raise NotFoundError("Version", version_id)
    return version


# =============================================================================
# Managed automations
# =============================================================================


@router.post("", response_model=ManagedAutomationResponse, status_code=status.HTTP_201_CREATED)
async def register_automation(
    body: RegisterAutomationRequest,
    user: CurrentUser,
    session: DBSession,
) -> ManagedAutomationResponse:
    """Manage an existing HA automation; optionally snapshot it as ``v1.1``."""
    lifecycle = AutomationLifecycleService(session)
    if await lifecycle.connections.get_for_user(body.connection_id, user) is None:
        raise NotFoundError("Connection", body.connection_id)

    automation = await lifecycle.register(
        body.connection_id,
        body.ha_automation_id,
        body.name,
        description=body.description,
        user_id=user,
    )
    if body.backup and await VersionService(session).latest(automation.id) is None:
        backup = await BackupService(session).create_backup(
            automation, user_id=user, description="Initial backup", backup_type=BackupType.FULL
        )
        await VersionService(session).create_version(
            automation,
            ModificationType.CREATE,
            backup_id=backup.id,
            description="Registered for lifecycle management",
            user_id=user,
        )
    await session.commit()
    await session.refresh(automation)
    return ManagedAutomationResponse.model_validate(automation)


@router.get("", response_model=Page[ManagedAutomationResponse])
async def list_automations(
    user: CurrentUser,
    session: DBSession,
    connection_id: str = Query(...),
    state: LifecycleState | None = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
) -> Page[ManagedAutomationResponse]:
    items, total = await AutomationLifecycleService(session).list_for_connection(
        user, connection_id, state=state, limit=limit, offset=offset
    )
    return Page[ManagedAutomationResponse].model_validate(
        page(items, total, limit, offset), from_attributes=True
    )


@router.post("/retirements/execute-due", response_model=DueRetirementsResponse)
async def execute_due_retirements(session: DBSession) -> DueRetirementsResponse:
    """Finish scheduled and gradual retirements whose time has come."""
    result = await RetirementService(session).execute_due_retirements()
    await session.commit()
    return DueRetirementsResponse(**result)


@router.get("/{automation_id}", response_model=ManagedAutomationResponse)
async def get_automation(
    automation_id: str, user: CurrentUser, session: DBSession
) -> ManagedAutomationResponse:
    return ManagedAutomationResponse.model_validate(await _owned(session, automation_id, user))


@router.post("/{automation_id}/activate", response_model=ManagedAutomationResponse)
async def activate_automation(
    automation_id: str,
    body: TransitionRequest,
    user: CurrentUser,
    session: DBSession,
) -> ManagedAutomationResponse:
    """Turn the automation on in HA and mark it ACTIVE."""
    automation = await AutomationLifecycleService(session).activate(automation_id, user, body.reason)
    await session.commit()
    await session.refresh(automation)
    return ManagedAutomationResponse.model_validate(automation)


@router.post("/{automation_id}/deactivate", response_model=ManagedAutomationResponse)
async def deactivate_automation(
    automation_id: str,
    body: TransitionRequest,
    user: CurrentUser,
    session: DBSession,
) -> ManagedAutomationResponse:
    """Turn the automation off in HA and mark it INACTIVE."""
    automation = await AutomationLifecycleService(session).deactivate(automation_id, user, body.reason)
    await session.commit()
    await session.refresh(automation)
    return ManagedAutomationResponse.model_validate(automation)


@router.get("/{automation_id}/history", response_model=list[LifecycleHistoryResponse])
async def lifecycle_history(
    automation_id: str,
    user: CurrentUser,
    session: DBSession,
    limit: int = Query(100, ge=1, le=500),
) -> list[LifecycleHistoryResponse]:
    """State transitions, newest first."""
    entries = await AutomationLifecycleService(session).history(automation_id, user, limit=limit)
    return [LifecycleHistoryResponse.model_validate(e) for e in entries]


# =============================================================================
# Backups
# =============================================================================


@router.post(
    "/{automation_id}/backups",
    response_model=BackupResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_backup(
    automation_id: str,
    body: BackupRequest,
    user: CurrentUser,
    session: DBSession,
) -> BackupResponse:
    """Snapshot the automation's current config from HA."""
    automation = await _owned(session, automation_id, user)
    backup = await BackupService(session).create_backup(
        automation, user_id=user, description=body.description, backup_type=body.backup_type
    )
    await session.commit()
    await session.refresh(backup)
    return BackupResponse.model_validate(backup)


@router.get("/{automation_id}/backups", response_model=list[BackupResponse])
async def list_backups(automation_id: str, user: CurrentUser, session: DBSession) -> list[BackupResponse]:
    automation = await _owned(session, automation_id, user)
    backups = await BackupService(session).list_for_automation(automation.id)
    return [BackupResponse.model_validate(b) for b in backups]


@router.get("/{automation_id}/backups/{backup_id}", response_model=BackupResponse)
async def get_backup(
    automation_id: str, backup_id: str, user: CurrentUser, session: DBSession
) -> BackupResponse:
    automation = await _owned(session, automation_id, user)
    return BackupResponse.model_validate(
        await _owned_backup(BackupService(session), automation, backup_id)
    )


@router.get("/{automation_id}/backups/{backup_id}/integrity")
async def backup_integrity(
    automation_id: str, backup_id: str, user: CurrentUser, session: DBSession
) -> dict[str, Any]:
    """Recompute the checksum and compare it with the stored one."""
    automation = await _owned(session, automation_id, user)
    service = BackupService(session)
    backup = await _owned_backup(service, automation, backup_id)
    return {"backup_id": backup.id, "valid": service.validate_integrity(backup)}


@router.post("/{automation_id}/backups/{backup_id}/restore", response_model=BackupResponse)
async def restore_backup(
    automation_id: str, backup_id: str, user: CurrentUser, session: DBSession
) -> BackupResponse:
    """Push a verified backup back to Home Assistant."""
    automation = await _owned(session, automation_id, user)
    service = BackupService(session)
    await _owned_backup(service, automation, backup_id)
    backup = await service.restore(backup_id, user)
    await session.commit()
    return BackupResponse.model_validate(backup)


@router.delete("/{automation_id}/backups/{backup_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_backup(
    automation_id: str, backup_id: str, user: CurrentUser, session: DBSession
) -> None:
    automation = await _owned(session, automation_id, user)
    service = BackupService(session)
    await _owned_backup(service, automation, backup_id)
    await service.delete(backup_id)
    await session.commit()


# =============================================================================
# Versions
# =============================================================================


@router.get("/{automation_id}/versions", response_model=list[VersionResponse])
async def version_history(
    automation_id: str, user: CurrentUser, session: DBSession
) -> list[VersionResponse]:
    """Versions, newest first."""
    automation = await _owned(session, automation_id, user)
    versions = await VersionService(session).history(automation.id)
    return [VersionResponse.model_validate(v) for v in versions]


@router.get("/{automation_id}/versions/latest", response_model=VersionResponse)
async def latest_version(automation_id: str, user: CurrentUser, session: DBSession) -> VersionResponse:
    automation = await _owned(session, automation_id, user)
    version = await VersionService(session).latest(automation.id)
    if version is None:
        raise NotFoundError("Version", f"latest of {automation.id}")
    return VersionResponse.model_validate(version)


@router.get("/{automation_id}/versions/statistics", response_model=VersionStatistics)
async def version_statistics(
    automation_id: str, user: CurrentUser, session: DBSession
) -> VersionStatistics:
    automation = await _owned(session, automation_id, user)
    return VersionStatistics(**await VersionService(session).statistics(automation.id))


@router.get("/{automation_id}/versions/compare", response_model=VersionComparison)
async def compare_versions(
    automation_id: str,
    user: CurrentUser,
    session: DBSession,
    version_a: str = Query(..., description="Older version ID"),
    version_b: str = Query(..., description="Newer version ID"),
) -> VersionComparison:
    """Metadata and per-key config differences from A to B."""
    automation = await _owned(session, automation_id, user)
    service = VersionService(session)
    await _owned_version(service, automation, version_a)
    await _owned_version(service, automation, version_b)
    return VersionComparison(**await service.compare(version_a, version_b))


@router.get("/{automation_id}/versions/{version_id}", response_model=VersionResponse)
async def get_version(
    automation_id: str, version_id: str, user: CurrentUser, session: DBSession
) -> VersionResponse:
    automation = await _owned(session, automation_id, user)
    return VersionResponse.model_validate(
        await _owned_version(VersionService(session), automation, version_id)
    )


@router.delete("/{automation_id}/versions/{version_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_version(
    automation_id: str, version_id: str, user: CurrentUser, session: DBSession
) -> None:
    automation = await _owned(session, automation_id, user)
    service = VersionService(session)
    await _owned_version(service, automation, version_id)
    await service.delete_version(version_id)
    await session.commit()


# =============================================================================
# Rollback
# =============================================================================


@router.get("/{automation_id}/rollback-targets", response_model=list[VersionResponse])
async def rollback_targets(
    automation_id: str, user: CurrentUser, session: DBSession
) -> list[VersionResponse]:
    """Every version except the latest, newest first."""
    automation = await _owned(session, automation_id, user)
    versions = await RollbackService(session).rollback_targets(automation)
    return [VersionResponse.model_validate(v) for v in versions]


@router.get("/{automation_id}/rollback/validate")
async def validate_rollback(
    automation_id: str,
    user: CurrentUser,
    session: DBSession,
    target_version_id: str = Query(...),
) -> dict[str, Any]:
    automation = await _owned(session, automation_id, user)
    errors = await RollbackService(session).validate_rollback(automation, target_version_id)
    return {"valid": not errors, "errors": errors}


@router.post("/{automation_id}/rollback", response_model=ModificationResultResponse)
async def perform_rollback(
    automation_id: str,
    body: RollbackRequest,
    user: CurrentUser,
    session: DBSession,
) -> ModificationResultResponse:
    """Restore the config of a previous version and record a ROLLBACK version."""
    automation = await _owned(session, automation_id, user)
    result = await RollbackService(session).perform_rollback(automation, body.target_version_id, user)
    if result.success:
        await session.commit()
    else:
        await session.rollback()
    return ModificationResultResponse(**result.to_dict())


@router.post("/{automation_id}/rollback/previous", response_model=ModificationResultResponse)
async def rollback_to_previous(
    automation_id: str, user: CurrentUser, session: DBSession
) -> ModificationResultResponse:
    automation = await _owned(session, automation_id, user)
    result = await RollbackService(session).rollback_to_previous(automation, user)
    if result.success:
        await session.commit()
    else:
        await session.rollback()
    return ModificationResultResponse(**result.to_dict())


# =============================================================================
# Dependencies
# =============================================================================


@router.post(
    "/{automation_id}/dependencies",
    response_model=DependencyResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_dependency(
    automation_id: str,
    body: DependencyCreate,
    user: CurrentUser,
    session: DBSession,
) -> DependencyResponse:
    """Record that this automation depends on ``target_automation_id``."""
    automation = await _owned(session, automation_id, user)
    service = DependencyService(session)
    await service.get_automation(body.target_automation_id, user)
    dependency = await service.create(
        automation.id,
        body.target_automation_id,
        body.dependency_type,
        body.strength,
        body.description,
    )
    await session.commit()
    await session.refresh(dependency)
    return DependencyResponse.model_validate(dependency)


@router.get("/{automation_id}/dependencies")
async def list_dependencies(
    automation_id: str, user: CurrentUser, session: DBSession
) -> dict[str, list[DependencyResponse]]:
    """Active edges in both directions."""
    automation = await _owned(session, automation_id, user)
    service = DependencyService(session)
    return {
        "incoming": [DependencyResponse.model_validate(d) for d in await service.incoming(automation.id)],
        "outgoing": [DependencyResponse.model_validate(d) for d in await service.outgoing(automation.id)],
    }


@router.delete("/{automation_id}/dependencies/{dependency_id}", response_model=DependencyResponse)
async def remove_dependency(
    automation_id: str, dependency_id: str, user: CurrentUser, session: DBSession
) -> DependencyResponse:
    """Deactivate an edge touching this automation."""
    automation = await _owned(session, automation_id, user)
    service = DependencyService(session)
    dependency = await service.dependencies.get_by_id(dependency_id)
    if dependency is None or automation.id not in (
        dependency.source_automation_id,
        dependency.target_automation_id,
    ):
        raise NotFoundError("Dependency", dependency_id)
    dependency = await service.remove(dependency_id)
    await session.commit()
    await session.refresh(dependency)
    return DependencyResponse.model_validate(dependency)


@router.get("/{automation_id}/dependencies/graph")
async def dependency_graph(
    automation_id: str,
    user: CurrentUser,
    session: DBSession,
    max_depth: int = Query(DEFAULT_GRAPH_DEPTH, ge=1, le=10),
) -> dict[str, Any]:
    """Everything that depends on this automation, transitively."""
    automation = await _owned(session, automation_id, user)
    return await DependencyService(session).build_graph(automation.id, max_depth=max_depth)


@router.get("/{automation_id}/dependencies/analysis")
async def dependency_analysis(automation_id: str, user: CurrentUser, session: DBSession) -> dict[str, Any]:
    automation = await _owned(session, automation_id, user)
    return await DependencyService(session).analyze(automation.id)


@router.get("/{automation_id}/dependencies/resolution")
async def dependency_resolution(
    automation_id: str,
    user: CurrentUser,
    session: DBSession,
    force: bool = Query(False),
) -> dict[str, Any]:
    """Which dependents can be resolved if this automation is retired."""
    automation = await _owned(session, automation_id, user)
    resolution = await DependencyService(session).resolve_for_retirement(automation.id, force)
    return {
        "resolved": [DependencyResponse.model_validate(d) for d in resolution["resolved"]],
        "unresolved": [DependencyResponse.model_validate(d) for d in resolution["unresolved"]],
        "affected_automations": resolution["affected_automations"],
        "can_retire": resolution["can_retire"],
    }


# =============================================================================
# Retirement
# =============================================================================


@router.post("/{automation_id}/retire", response_model=RetirementResponse)
async def retire_automation(
    automation_id: str,
    body: RetirementRequestBody,
    user: CurrentUser,
    session: DBSession,
) -> RetirementResponse:
    """Retire now, at a scheduled time, or gradually (inactive first)."""
    result = await RetirementService(session).initiate_retirement(
        RetirementRequest(
            automation_id=automation_id,
            user_id=user,
            retirement_type=body.retirement_type,
            reason=body.reason,
            force=body.force,
            scheduled_at=body.scheduled_at,
            create_replacement=body.create_replacement,
            replacement_config=body.replacement_config,
            metadata=body.metadata,
        )
    )
    await session.commit()
    if result.retirement is not None:
        await session.refresh(result.retirement)
    return RetirementResponse(
        success=result.success,
        retirement=(
            RetirementRecordResponse.model_validate(result.retirement) if result.retirement else None
        ),
        errors=result.errors,
        blocking_dependencies=result.blocking_dependencies,
        replacement_automation_id=result.replacement_automation_id,
    )


@router.get("/{automation_id}/retirements", response_model=list[RetirementRecordResponse])
async def retirement_history(
    automation_id: str, user: CurrentUser, session: DBSession
) -> list[RetirementRecordResponse]:
    automation = await _owned(session, automation_id, user)
    records = await RetirementService(session).retirement_history(automation.id)
    return [RetirementRecordResponse.model_validate(r) for r in records]
