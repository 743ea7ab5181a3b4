"""Retirement of managed automations (immediate, scheduled or gradual)."""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.dal.retirements import RetirementRepository
from src.exceptions import HAClientError, LifecycleError, TapphaError, ValidationError
from src.ha.client import HAClient
from src.lifecycle.automations import AutomationLifecycleService
from src.lifecycle.backups import BackupService
from src.lifecycle.base import LifecycleService
from src.lifecycle.dependencies import DependencyService
from src.lifecycle.deploy import AutomationDeployer
from src.lifecycle.versions import VersionService
from src.settings import get_settings
from src.storage.entities.automation_backup import BackupType
from src.storage.entities.automation_retirement import (
    AutomationRetirement,
    RetirementStatus,
    RetirementType,
)
from src.storage.entities.automation_version import ModificationType
from src.storage.entities.managed_automation import LifecycleState, ManagedAutomation

logger = logging.getLogger(__name__)


@dataclass
class RetirementRequest:
    """What to retire, how and why."""

    automation_id: str
    user_id: str
    retirement_type: RetirementType
    reason: str
    force: bool = False
    scheduled_at: datetime | None = None
    create_replacement: bool = False
    replacement_config: dict[str, Any] | None = None
    metadata: dict[str, Any] | None = None


@dataclass
class RetirementResult:
    """Outcome of a retirement request."""

    success: bool
    retirement: AutomationRetirement | None = None
    errors: list[str] = field(default_factory=list)
    blocking_dependencies: list[str] = field(default_factory=list)
    replacement_automation_id: str | None = None


class RetirementService(LifecycleService):
    """Validates, backs up and retires automations."""

    def __init__(self, session: AsyncSession, ha_client: HAClient | None = None):
        super().__init__(session, ha_client)
        self.retirements = RetirementRepository(session)
        self.lifecycle = AutomationLifecycleService(session, ha_client)
        self.backup_service = BackupService(session, ha_client)
        self.version_service = VersionService(session, ha_client)
        self.dependency_service = DependencyService(session, ha_client)
        self.deployer = AutomationDeployer(session, ha_client)

    @staticmethod
    def _validate(request: RetirementRequest, automation: ManagedAutomation, now: datetime) -> None:
        if automation.lifecycle_state == LifecycleState.RETIRED:
            raise LifecycleError(f"Automation {automation.ha_automation_id} is already retired")
        if (
            request.retirement_type == RetirementType.GRADUAL
            and automation.lifecycle_state == LifecycleState.PENDING
        ):
            raise LifecycleError(
                f"Automation {automation.ha_automation_id} is PENDING; "
                "retire it immediately or on a schedule instead"
            )
        errors = []
        if not request.reason or not request.reason.strip():
            errors.append("A retirement reason is required")
        if request.retirement_type == RetirementType.SCHEDULED:
            if request.scheduled_at is None:
                errors.append("scheduled_at is required for SCHEDULED retirement")
            elif request.scheduled_at <= now:
                errors.append("scheduled_at must be in the future")
        if request.create_replacement and not request.replacement_config:
            errors.append("replacement_config is required when create_replacement is set")
        if errors:
            raise ValidationError("Invalid retirement request", errors=errors)

    async def initiate_retirement(self, request: RetirementRequest) -> RetirementResult:
        """Run the retirement workflow and persist its record.

        Raises:
            NotFoundError: Unknown automation (or not owned by the user).
            LifecycleError: Automation already retired, or PENDING with a
                gradual request.
            ValidationError: Invalid request fields.

        A failed replacement deploy does not undo a completed immediate
        retirement; it is reported in ``errors``.
        """
        now = datetime.now(UTC)
        automation = await self.get_automation(request.automation_id, request.user_id)
        self._validate(request, automation, now)

        retirement = AutomationRetirement(
            managed_automation_id=automation.id,
            connection_id=automation.connection_id,
            requested_by=request.user_id,
            retirement_type=request.retirement_type,
            status=RetirementStatus.PENDING,
            reason=request.reason.strip(),
            force=request.force,
            scheduled_at=request.scheduled_at,
            metadata_=request.metadata,
        )

        resolution = await self.dependency_service.resolve_for_retirement(
            automation.id, request.force
        )
        if not resolution["can_retire"]:
            blocking = [d.source_automation_id for d in resolution["unresolved"]]
            retirement.status = RetirementStatus.FAILED
            retirement.error = "Blocked by strong dependencies"
            retirement.resolved_dependencies = []
            await self.retirements.add(retirement)
            return RetirementResult(
                success=False,
                retirement=retirement,
                errors=[f"{len(blocking)} automation(s) depend strongly on this automation"],
                blocking_dependencies=blocking,
            )

        try:
            backup = await self.backup_service.create_backup(
                automation,
                user_id=request.user_id,
                description=f"Before retirement: {retirement.reason}",
                backup_type=BackupType.BEFORE_MODIFICATION,
            )
            retirement.backup_id = backup.id

            if request.retirement_type == RetirementType.IMMEDIATE:
                await self._retire_now(automation, retirement, request.user_id, request.force)
            elif request.retirement_type == RetirementType.SCHEDULED:
                retirement.resolved_dependencies = [d.id for d in resolution["resolved"]]
            else:
                if automation.lifecycle_state == LifecycleState.ACTIVE:
                    await self._disable_in_ha(automation)
                    await self.lifecycle.transition(
                        automation,
                        LifecycleState.INACTIVE,
                        reason=f"Gradual retirement: {retirement.reason}",
                        user_id=request.user_id,
                    )
                retirement.scheduled_at = now + timedelta(days=get_settings().gradual_retirement_days)
                retirement.resolved_dependencies = [d.id for d in resolution["resolved"]]
        except TapphaError as e:
            logger.warning("Retirement of %s failed: %s", automation.ha_automation_id, e)
            retirement.status = RetirementStatus.FAILED
            retirement.error = str(e)
            await self.retirements.add(retirement)
            return RetirementResult(success=False, retirement=retirement, errors=[str(e)])

        errors: list[str] = []
        if request.retirement_type == RetirementType.IMMEDIATE and request.create_replacement:
            try:
                await self._deploy_replacement(automation, retirement, request)
            except TapphaError as e:
                logger.warning(
                    "Replacement for retired %s failed: %s", automation.ha_automation_id, e
                )
                errors.append(f"Replacement deployment failed: {e}")

        await self.retirements.add(retirement)
        return RetirementResult(
            success=True,
            retirement=retirement,
            errors=errors,
            replacement_automation_id=retirement.replacement_automation_id,
        )

    async def _deploy_replacement(
        self,
        automation: ManagedAutomation,
        retirement: AutomationRetirement,
        request: RetirementRequest,
    ) -> None:
        config = request.replacement_config or {}
        deployment = await self.deployer.deploy(
            automation.connection_id,
            config.get("alias") or f"{automation.name} (replacement)",
            config,
            description=f"Replacement for {automation.name}",
            user_id=request.user_id,
        )
        retirement.replacement_automation_id = deployment.automation.id

    async def _disable_in_ha(self, automation: ManagedAutomation) -> None:
        client = await self.ha_client(automation.connection_id)
        result = await client.turn_off_automation(automation.ha_automation_id)
        if not result.get("success"):
            raise HAClientError(
                f"Failed to disable {automation.entity_id}: {result.get('error')}",
                "automation.turn_off",
            )

    async def _retire_now(
        self,
        automation: ManagedAutomation,
        retirement: AutomationRetirement,
        user_id: str | None,
        force: bool,
    ) -> None:
        """Disable, release dependents, mark RETIRED and record a RETIRE version."""
        resolution = await self.dependency_service.resolve_for_retirement(automation.id, force)
        if not resolution["can_retire"]:
            raise LifecycleError("Blocked by strong dependencies")

        await self._disable_in_ha(automation)
        for dependency in resolution["resolved"]:
            dependency.active = False
        await self.lifecycle.transition(
            automation,
            LifecycleState.RETIRED,
            reason=retirement.reason,
            user_id=user_id,
            metadata={"retirement_type": retirement.retirement_type.value},
        )
        await self.version_service.create_version(
            automation,
            ModificationType.RETIRE,
            backup_id=retirement.backup_id,
            description=f"Retired: {retirement.reason}",
            user_id=user_id,
        )
        retirement.resolved_dependencies = [d.id for d in resolution["resolved"]]
        retirement.status = RetirementStatus.COMPLETED
        retirement.completed_at = datetime.now(UTC)
        await self.session.flush()

    async def retirement_history(self, automation_id: str) -> list[AutomationRetirement]:
        return await self.retirements.history(automation_id)

    async def execute_due_retirements(self, now: datetime | None = None) -> dict[str, int]:
        """Finish scheduled and gradual retirements whose time has come."""
        now = now or datetime.now(UTC)
        completed = failed = 0
        for retirement in await self.retirements.due(now):
            automation = await self.automations.get_by_id(retirement.managed_automation_id)
            if automation is None:
                retirement.status = RetirementStatus.FAILED
                retirement.error = "Automation no longer exists"
                failed += 1
                continue
            if automation.lifecycle_state == LifecycleState.RETIRED:
                retirement.status = RetirementStatus.COMPLETED
                retirement.completed_at = now
                continue
            try:
                await self._retire_now(
                    automation, retirement, retirement.requested_by, retirement.force
                )
                completed += 1
            except TapphaError as e:
                logger.warning(
                    "Scheduled retirement %s of %s failed: %s",
                    retirement.id,
                    automation.ha_automation_id,
                    e,
                )
                retirement.status = RetirementStatus.FAILED
                retirement.error = str(e)
                failed += 1
        await self.session.flush()
        return {"completed": completed, "failed": failed}
