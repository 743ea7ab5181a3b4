"""Built-in automation templates offered by the creation wizard.

Each template carries starter triggers, conditions and actions in Home
Assistant's automation config format; the wizard's ``template_selection``
step only accepts ids from this catalogue.
"""

from dataclasses import asdict, dataclass, field
from typing import Any

from src.exceptions import NotFoundError


@dataclass(frozen=True)
class AutomationTemplate:
    id: str
    name: str
    description: str
    category: str
    complexity: str
    triggers: list[dict[str, Any]] = field(default_factory=list)
    conditions: list[dict[str, Any]] = field(default_factory=list)
    actions: list[dict[str, Any]] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


TEMPLATES: tuple[AutomationTemplate, ...] = (
    AutomationTemplate(
        id="motion-light",
        name="Motion-activated light",
        description="Turn a light on when motion is detected and off again after a delay",
        category="convenience",
        complexity="basic",
        triggers=[{"platform": "state", "entity_id": "binary_sensor.motion", "to": "on"}],
        actions=[
            {"service": "light.turn_on", "target": {"entity_id": "light.hallway"}},
            {"delay": {"minutes": 5}},
            {"service": "light.turn_off", "target": {"entity_id": "light.hallway"}},
        ],
        tags=["lighting", "motion"],
    ),
    AutomationTemplate(
        id="energy-optimization",
        name="Energy optimization",
        description="Switch lights off when the house becomes unoccupied during the day",
        category="energy",
        complexity="advanced",
        triggers=[
            {"platform": "state", "entity_id": "binary_sensor.occupancy", "to": "off", "for": "00:10:00"}
        ],
        conditions=[{"condition": "time", "after": "06:00:00", "before": "22:00:00"}],
        actions=[{"service": "light.turn_off", "target": {"entity_id": "all"}}],
        tags=["energy", "occupancy"],
    ),
    AutomationTemplate(
        id="security-alert",
        name="Night security alert",
        description="Light up outdoors and send a notification on motion at night",
        category="security",
        complexity="basic",
        triggers=[{"platform": "state", "entity_id": "binary_sensor.outdoor_motion", "to": "on"}],
        conditions=[{"condition": "time", "after": "22:00:00", "before": "06:00:00"}],
        actions=[
            {"service": "light.turn_on", "target": {"entity_id": "light.outdoor"}},
            {"service": "notify.mobile_app", "data": {"message": "Motion detected outside"}},
        ],
        tags=["security", "motion", "alerts"],
    ),
    AutomationTemplate(
        id="comfort-climate",
        name="Comfort temperature",
        description="Set the thermostat to a comfortable temperature when someone is home",
        category="comfort",
        complexity="basic",
        triggers=[{"platform": "state", "entity_id": "binary_sensor.occupancy", "to": "on"}],
        actions=[
            {
                "service": "climate.set_temperature",
                "target": {"entity_id": "climate.thermostat"},
                "data": {"temperature": 22},
            }
        ],
        tags=["comfort", "temperature"],
    ),
    AutomationTemplate(
        id="morning-routine",
        name="Morning routine",
        description="Open the covers and turn on the kitchen lights on weekday mornings",
        category="convenience",
        complexity="basic",
        triggers=[{"platform": "time", "at": "07:00:00"}],
        conditions=[{"condition": "time", "weekday": ["mon", "tue", "wed", "thu", "fri"]}],
        actions=[
            {"service": "cover.open_cover", "target": {"entity_id": "cover.living_room"}},
            {"service": "light.turn_on", "target": {"entity_id": "light.kitchen"}},
        ],
        tags=["routine", "morning"],
    ),
)

_BY_ID = {template.id: template for template in TEMPLATES}


def list_templates(category: str | None = None) -> list[AutomationTemplate]:
    if category is None:
        return list(TEMPLATES)
    return [t for t in TEMPLATES if t.category == category]


def get_template(template_id: str) -> AutomationTemplate:
    """Look up a template by id.

    Raises:
        NotFoundError: Unknown template id.
    """
    template = _BY_ID.get(template_id)
    if template is None:
        raise NotFoundError("Automation template", template_id)
    return template


def is_known_template(template_id: str) -> bool:
    return template_id in _BY_ID


__all__ = [
    "TEMPLATES",
    "AutomationTemplate",
    "get_template",
    "is_known_template",
    "list_templates",
]
