"""Automation creation wizard routes."""

from fastapi import APIRouter, Query, status

from src.api.deps import CurrentUser, DBSession
from src.api.schemas.wizard import (
    AutomationTemplateResponse,
    CompleteWizardRequest,
    CompleteWizardResponse,
    NextStepResponse,
    StartWizardRequest,
    StepDataRequest,
    StepValidation,
    WizardSessionResponse,
)
from src.dal import ConnectionRepository
from src.exceptions import NotFoundError
from src.lifecycle import AutomationDeployer, get_template, get_wizard, list_templates
from src.lifecycle.wizard import to_ha_config

router = APIRouter(prefix="/wizard", tags=["Automation Wizard"])


@router.get("/templates", response_model=list[AutomationTemplateResponse])
async def list_automation_templates(
    user: CurrentUser,
    category: str | None = Query(None),
) -> list[AutomationTemplateResponse]:
    """Templates a wizard session can start from."""
    return [AutomationTemplateResponse(**t.to_dict()) for t in list_templates(category)]


@router.get("/templates/{template_id}", response_model=AutomationTemplateResponse)
async def get_automation_template(template_id: str, user: CurrentUser) -> AutomationTemplateResponse:
    return AutomationTemplateResponse(**get_template(template_id).to_dict())


@router.post("/sessions", response_model=WizardSessionResponse, status_code=status.HTTP_201_CREATED)
async def start_session(
    body: StartWizardRequest,
    user: CurrentUser,
    session: DBSession,
) -> WizardSessionResponse:
    if await ConnectionRepository(session).get_for_user(body.connection_id, user) is None:
        raise NotFoundError("Connection", body.connection_id)
    wizard_session = get_wizard().start_session(user, body.connection_id)
    return WizardSessionResponse(**wizard_session.to_dict())


@router.get("/sessions/{session_id}", response_model=WizardSessionResponse)
async def get_session(session_id: str, user: CurrentUser) -> WizardSessionResponse:
    return WizardSessionResponse(**get_wizard().get_session(session_id, user).to_dict())


@router.post("/sessions/{session_id}/validate", response_model=StepValidation)
async def validate_step(session_id: str, body: StepDataRequest, user: CurrentUser) -> StepValidation:
    """Validate data for the current step without storing it."""
    wizard = get_wizard()
    wizard.get_session(session_id, user)
    return StepValidation(**wizard.validate_current_step(session_id, body.data))


@router.post("/sessions/{session_id}/next", response_model=NextStepResponse)
async def next_step(session_id: str, body: StepDataRequest, user: CurrentUser) -> NextStepResponse:
    """Store the current step's data and advance if it is valid."""
    wizard_session, result = get_wizard().next_step(session_id, body.data, user)
    return NextStepResponse(
        session=WizardSessionResponse(**wizard_session.to_dict()),
        validation=StepValidation(**result),
    )


@router.post("/sessions/{session_id}/previous", response_model=WizardSessionResponse)
async def previous_step(session_id: str, user: CurrentUser) -> WizardSessionResponse:
    return WizardSessionResponse(**get_wizard().previous_step(session_id, user).to_dict())


@router.post("/sessions/{session_id}/complete", response_model=CompleteWizardResponse)
async def complete_session(
    session_id: str,
    body: CompleteWizardRequest,
    user: CurrentUser,
    session: DBSession,
) -> CompleteWizardResponse:
    """Build the final config and optionally deploy it to Home Assistant."""
    config = get_wizard().complete(session_id, user)
    if not body.deploy:
        return CompleteWizardResponse(config=config)

    ha_config = to_ha_config(config)
    result = await AutomationDeployer(session).deploy(
        config["metadata"]["connectionId"],
        ha_config.pop("alias"),
        ha_config,
        description=ha_config.get("description"),
        user_id=user,
    )
    await session.commit()
    return CompleteWizardResponse(
        config=config,
        automation_id=result.automation.id,
        ha_automation_id=result.ha_automation_id,
    )
