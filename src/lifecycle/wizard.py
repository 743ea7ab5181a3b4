"""Step-by-step automation creation wizard.

Sessions live in memory; each advance validates the current step's data,
stores it and appends the next step of the catalogue.
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from src.exceptions import LifecycleError, NotFoundError, ValidationError
from src.lifecycle.templates import is_known_template

logger = logging.getLogger(__name__)

SEVERITY_ERROR = "error"
SEVERITY_WARNING = "warning"

STATUS_ACTIVE = "active"
STATUS_COMPLETED = "completed"
STATUS_EXPIRED = "expired"

STEP_CATALOGUE: list[dict[str, str]] = [
    {"id": "template_selection", "title": "Select a template"},
    {"id": "trigger_configuration", "title": "Configure triggers"},
    {"id": "condition_configuration", "title": "Configure conditions"},
    {"id": "action_configuration", "title": "Configure actions"},
    {"id": "review_and_create", "title": "Review and create"},
]


@dataclass
class WizardStep:
    id: str
    title: str
    data: dict[str, Any] = field(default_factory=dict)
    validation: dict[str, Any] | None = None

    @property
    def is_valid(self) -> bool:
        return bool(self.validation and self.validation["valid"])


@dataclass
class WizardSession:
    id: str
    user_id: str
    connection_id: str
    steps: list[WizardStep]
    current_step: int = 0
    status: str = STATUS_ACTIVE
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.id,
            "user_id": self.user_id,
            "connection_id": self.connection_id,
            "current_step": self.current_step,
            "status": self.status,
            "steps": [
                {"id": s.id, "title": s.title, "data": s.data, "validation": s.validation}
                for s in self.steps
            ],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


def _issue(field_name: str, message: str, severity: str = SEVERITY_ERROR) -> dict[str, str]:
    return {"field": field_name, "message": message, "severity": severity}


def validate_step(step_id: str, data: dict[str, Any]) -> dict[str, Any]:
    """Validate the data of one step.

    Returns:
        ``{"valid": bool, "errors": [...], "warnings": [...]}`` where every
        issue carries ``field``, ``message`` and ``severity``.
    """
    errors: list[dict[str, str]] = []
    warnings: list[dict[str, str]] = []

    if step_id == "template_selection":
        for key in ("templateId", "templateName"):
            if not data.get(key):
                errors.append(_issue(key, f"{key} is required"))
        template_id = data.get("templateId")
        if template_id and not is_known_template(template_id):
            errors.append(_issue("templateId", f"Unknown template: {template_id}"))
    elif step_id == "trigger_configuration":
        triggers = data.get("triggers")
        if not isinstance(triggers, list) or not triggers:
            errors.append(_issue("triggers", "At least one trigger is required"))
        elif len(triggers) > 5:
            warnings.append(
                _issue("triggers", "Many triggers make an automation hard to follow", SEVERITY_WARNING)
            )
    elif step_id == "condition_configuration":
        conditions = data.get("conditions", [])
        if not isinstance(conditions, list):
            errors.append(_issue("conditions", "Conditions must be a list"))
        elif not conditions:
            warnings.append(
                _issue("conditions", "No conditions: the automation runs on every trigger", SEVERITY_WARNING)
            )
    elif step_id == "action_configuration":
        actions = data.get("actions")
        if not isinstance(actions, list) or not actions:
            errors.append(_issue("actions", "At least one action is required"))
    elif step_id == "review_and_create":
        if data.get("confirmed") is not True:
            errors.append(_issue("confirmed", "The configuration must be confirmed"))
    else:
        errors.append(_issue("step", f"Unknown step: {step_id}"))

    return {"valid": not errors, "errors": errors, "warnings": warnings}


class AutomationWizard:
    """Thread-safe registry of wizard sessions."""

    def __init__(self, ttl: timedelta | None = None):
        self.ttl = ttl or timedelta(hours=24)
        self._sessions: dict[str, WizardSession] = {}
        self._lock = threading.Lock()

    def start_session(self, user_id: str, connection_id: str) -> WizardSession:
        first = STEP_CATALOGUE[0]
        session = WizardSession(
            id=str(uuid.uuid4()),
            user_id=user_id,
            connection_id=connection_id,
            steps=[WizardStep(id=first["id"], title=first["title"])],
        )
        with self._lock:
            self._sessions[session.id] = session
        logger.info("Started wizard session %s for %s", session.id, user_id)
        return session

    def get_session(self, session_id: str, user_id: str | None = None) -> WizardSession:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None or (user_id is not None and session.user_id != user_id):
            raise NotFoundError("Wizard session", session_id)
        return session

    @staticmethod
    def _require_active(session: WizardSession) -> None:
        if session.status != STATUS_ACTIVE:
            raise LifecycleError(f"Wizard session {session.id} is {session.status}")

    def validate_current_step(self, session_id: str, data: dict[str, Any]) -> dict[str, Any]:
        session = self.get_session(session_id)
        return validate_step(session.steps[session.current_step].id, data)

    def next_step(
        self, session_id: str, data: dict[str, Any], user_id: str | None = None
    ) -> tuple[WizardSession, dict[str, Any]]:
        """Validate and store the current step's data, then advance.

        Invalid data is stored with its validation result and the session
        stays on the current step.
        """
        session = self.get_session(session_id, user_id)
        with self._lock:
            self._require_active(session)
            step = session.steps[session.current_step]
            result = validate_step(step.id, data)
            step.data = dict(data)
            step.validation = result
            session.updated_at = datetime.now(UTC)
            if not result["valid"]:
                return session, result

            index = session.current_step + 1
            if index < len(STEP_CATALOGUE):
                if index >= len(session.steps):
                    nxt = STEP_CATALOGUE[index]
                    session.steps.append(WizardStep(id=nxt["id"], title=nxt["title"]))
                session.current_step = index
        return session, result

    def previous_step(self, session_id: str, user_id: str | None = None) -> WizardSession:
        session = self.get_session(session_id, user_id)
        with self._lock:
            self._require_active(session)
            if session.current_step > 0:
                session.current_step -= 1
                session.updated_at = datetime.now(UTC)
        return session

    def complete(self, session_id: str, user_id: str | None = None) -> dict[str, Any]:
        """Build the automation config from a fully valid session.

        Raises:
            ValidationError: If any step is missing or invalid.
        """
        session = self.get_session(session_id, user_id)
        with self._lock:
            self._require_active(session)
            by_id = {step.id: step for step in session.steps}
            missing = [s["id"] for s in STEP_CATALOGUE if not (s["id"] in by_id and by_id[s["id"]].is_valid)]
            if missing:
                raise ValidationError(
                    "Wizard session is incomplete",
                    errors=[f"Step not completed: {step_id}" for step_id in missing],
                )

            now = datetime.now(UTC)
            template = by_id["template_selection"].data
            config = {
                "template": {
                    "templateId": template["templateId"],
                    "templateName": template["templateName"],
                },
                "triggers": by_id["trigger_configuration"].data["triggers"],
                "conditions": by_id["condition_configuration"].data.get("conditions", []),
                "actions": by_id["action_configuration"].data["actions"],
                "confirmed": True,
                "metadata": {
                    "createdBy": session.user_id,
                    "connectionId": session.connection_id,
                    "createdAt": now.isoformat(),
                    "wizardSessionId": session.id,
                },
            }
            session.status = STATUS_COMPLETED
            session.updated_at = now
        logger.info("Completed wizard session %s", session.id)
        return config

    def cleanup_expired(self, ttl: timedelta | None = None, now: datetime | None = None) -> int:
        """Drop sessions idle for longer than ``ttl``. Returns how many were removed."""
        ttl = ttl or self.ttl
        now = now or datetime.now(UTC)
        with self._lock:
            expired = [sid for sid, s in self._sessions.items() if now - s.updated_at > ttl]
            for sid in expired:
                self._sessions[sid].status = STATUS_EXPIRED
                del self._sessions[sid]
        if expired:
            logger.info("Expired %d wizard sessions", len(expired))
        return len(expired)

    def __len__(self) -> int:
        return len(self._sessions)


_wizard: AutomationWizard | None = None


def get_wizard() -> AutomationWizard:
    global _wizard
    if _wizard is None:
        from src.settings import get_settings

        _wizard = AutomationWizard(ttl=timedelta(hours=get_settings().wizard_session_ttl_hours))
    return _wizard


def reset_wizard() -> None:
    global _wizard
    _wizard = None


def to_ha_config(config: dict[str, Any]) -> dict[str, Any]:
    """Translate a completed wizard config to an HA automation config."""
    return {
        "alias": config["template"]["templateName"],
        "description": f"Created with the automation wizard ({config['template']['templateId']})",
        "trigger": config["triggers"],
        "condition": config["conditions"],
        "action": config["actions"],
        "mode": "single",
    }
