"""Automation creation wizard API schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class AutomationTemplateResponse(BaseModel):
    id: str
    name: str
    description: str
    category: str
    complexity: str
    triggers: list[dict[str, Any]] = Field(default_factory=list)
    conditions: list[dict[str, Any]] = Field(default_factory=list)
    actions: list[dict[str, Any]] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)


class StartWizardRequest(BaseModel):
    connection_id: str


class StepDataRequest(BaseModel):
    data: dict[str, Any] = Field(default_factory=dict)


class ValidationIssue(BaseModel):
    field: str
    message: str
    severity: str


class StepValidation(BaseModel):
    valid: bool
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)


class WizardStepResponse(BaseModel):
    id: str
    title: str
    data: dict[str, Any] = Field(default_factory=dict)
    validation: StepValidation | None = None


class WizardSessionResponse(BaseModel):
    session_id: str
    user_id: str
    connection_id: str
    current_step: int
    status: str
    steps: list[WizardStepResponse]
    created_at: datetime
    updated_at: datetime


class NextStepResponse(BaseModel):
    session: WizardSessionResponse
    validation: StepValidation


class CompleteWizardRequest(BaseModel):
    deploy: bool = Field(False, description="Deploy the result to Home Assistant immediately")


class CompleteWizardResponse(BaseModel):
    config: dict[str, Any]
    automation_id: str | None = None
    ha_automation_id: str | None = None
