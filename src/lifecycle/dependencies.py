"""Dependency tracking between managed automations."""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.dal.dependencies import DependencyRepository
from src.exceptions import ConflictError, NotFoundError, ValidationError
from src.ha.client import HAClient
from src.lifecycle.base import LifecycleService
from src.storage.entities.automation_dependency import (
    AutomationDependency,
    DependencyStrength,
    DependencyType,
)

logger = logging.getLogger(__name__)

DEFAULT_GRAPH_DEPTH = 5


class DependencyService(LifecycleService):
    """Records edges ``source depends on target`` and answers retirement questions."""

    def __init__(self, session: AsyncSession, ha_client: HAClient | None = None):
        super().__init__(session, ha_client)
        self.dependencies = DependencyRepository(session)

    async def create(
        self,
        source_automation_id: str,
        target_automation_id: str,
        dependency_type: DependencyType,
        strength: DependencyStrength,
        description: str | None = None,
    ) -> AutomationDependency:
        """Record that ``source`` depends on ``target``.

        Raises:
            ValidationError: For a self-dependency or automations on different connections.
            ConflictError: If the active edge already exists.
        """
        if source_automation_id == target_automation_id:
            raise ValidationError(
                "An automation cannot depend on itself",
                errors=["source_automation_id and target_automation_id must differ"],
            )
        source = await self.get_automation(source_automation_id)
        target = await self.get_automation(target_automation_id)
        if source.connection_id != target.connection_id:
            raise ValidationError("Dependencies must stay within one connection")
        if await self.dependencies.find_edge(source.id, target.id) is not None:
            raise ConflictError(f"{source.name} already depends on {target.name}")

        return await self.dependencies.create(
            {
                "connection_id": source.connection_id,
                "source_automation_id": source.id,
                "target_automation_id": target.id,
                "dependency_type": dependency_type,
                "strength": strength,
                "description": description,
                "active": True,
            }
        )

    async def remove(self, dependency_id: str) -> AutomationDependency:
        """Deactivate an edge (kept for history)."""
        dependency = await self.dependencies.get_by_id(dependency_id)
        if dependency is None:
            raise NotFoundError("Dependency", dependency_id)
        dependency.active = False
        await self.session.flush()
        return dependency

    async def incoming(self, automation_id: str) -> list[AutomationDependency]:
        """Who depends on ``automation_id``."""
        return await self.dependencies.incoming(automation_id)

    async def outgoing(self, automation_id: str) -> list[AutomationDependency]:
        """What ``automation_id`` depends on."""
        return await self.dependencies.outgoing(automation_id)

    async def has_strong_dependencies(self, automation_id: str) -> bool:
        return any(
            dep.strength == DependencyStrength.STRONG
            for dep in await self.dependencies.incoming(automation_id)
        )

    @staticmethod
    def is_resolvable(dependency: AutomationDependency) -> bool:
        return dependency.is_resolvable

    async def resolve_for_retirement(self, automation_id: str, force: bool = False) -> dict[str, Any]:
        """Split incoming edges into resolvable and blocking ones."""
        resolved: list[AutomationDependency] = []
        unresolved: list[AutomationDependency] = []
        for dependency in await self.dependencies.incoming(automation_id):
            if dependency.is_resolvable or force:
                resolved.append(dependency)
            else:
                unresolved.append(dependency)
        affected = sorted({d.source_automation_id for d in resolved + unresolved})
        return {
            "resolved": resolved,
            "unresolved": unresolved,
            "affected_automations": affected,
            "can_retire": not unresolved or force,
        }

    async def build_graph(
        self, automation_id: str, max_depth: int = DEFAULT_GRAPH_DEPTH
    ) -> dict[str, Any]:
        """Walk incoming edges breadth-first up to ``max_depth`` levels."""
        nodes: dict[str, dict[str, Any]] = {automation_id: {"id": automation_id, "depth": 0}}
        edges: list[dict[str, Any]] = []
        visited = {automation_id}
        frontier = [automation_id]

        for depth in range(1, max_depth + 1):
            next_frontier: list[str] = []
            for node_id in frontier:
                for dependency in await self.dependencies.incoming(node_id):
                    edges.append(
                        {
                            "id": dependency.id,
                            "source": dependency.source_automation_id,
                            "target": dependency.target_automation_id,
                            "type": dependency.dependency_type.value,
                            "strength": dependency.strength.value,
                        }
                    )
                    source = dependency.source_automation_id
                    if source not in visited:
                        visited.add(source)
                        nodes[source] = {"id": source, "depth": depth}
                        next_frontier.append(source)
            if not next_frontier:
                break
            frontier = next_frontier

        return {"root": automation_id, "nodes": list(nodes.values()), "edges": edges}

    async def analyze(self, automation_id: str) -> dict[str, Any]:
        incoming = await self.dependencies.incoming(automation_id)
        outgoing = await self.dependencies.outgoing(automation_id)
        graph = await self.build_graph(automation_id)
        return {
            "automation_id": automation_id,
            "incoming_count": len(incoming),
            "outgoing_count": len(outgoing),
            "strong_dependencies": sum(
                1 for d in incoming if d.strength == DependencyStrength.STRONG
            ),
            "graph_nodes": len(graph["nodes"]),
            "graph_edges": len(graph["edges"]),
        }
