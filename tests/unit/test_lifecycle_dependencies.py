"""Unit tests for automation dependency tracking."""

from unittest.mock import AsyncMock

import pytest

from src.exceptions import ConflictError, NotFoundError, ValidationError
from src.lifecycle import DependencyService
from src.storage.entities import (
    AutomationDependency,
    DependencyStrength,
    DependencyType,
    LifecycleState,
    ManagedAutomation,
)


def _automation(automation_id: str, connection_id: str = "conn-1") -> ManagedAutomation:
    return ManagedAutomation(
        id=automation_id,
        connection_id=connection_id,
        ha_automation_id=automation_id.replace("-", "_"),
        name=automation_id,
        lifecycle_state=LifecycleState.ACTIVE,
        is_active=True,
        version=1,
    )


def _edge(source: str, target: str, strength=DependencyStrength.WEAK, edge_id=None):
    return AutomationDependency(
        id=edge_id or f"{source}->{target}",
        connection_id="conn-1",
        source_automation_id=source,
        target_automation_id=target,
        dependency_type=DependencyType.TRIGGER,
        strength=strength,
        active=True,
    )


@pytest.fixture
def service(mock_session) -> DependencyService:
    service = DependencyService(mock_session)
    service.automations = AsyncMock()
    service.connections = AsyncMock()
    service.dependencies = AsyncMock()
    return service


@pytest.mark.asyncio
class TestCreate:
    async def test_self_dependency(self, service):
        with pytest.raises(ValidationError):
            await service.create("a", "a", DependencyType.TRIGGER, DependencyStrength.WEAK)

    async def test_cross_connection(self, service):
        autos = {"a": _automation("a"), "b": _automation("b", "conn-2")}
        service.automations.get_by_id.side_effect = autos.get
        with pytest.raises(ValidationError, match="one connection"):
            await service.create("a", "b", DependencyType.TRIGGER, DependencyStrength.WEAK)

    async def test_duplicate_edge(self, service):
        autos = {"a": _automation("a"), "b": _automation("b")}
        service.automations.get_by_id.side_effect = autos.get
        service.dependencies.find_edge.return_value = _edge("a", "b")
        with pytest.raises(ConflictError):
            await service.create("a", "b", DependencyType.TRIGGER, DependencyStrength.WEAK)

    async def test_creates_edge(self, service):
        autos = {"a": _automation("a"), "b": _automation("b")}
        service.automations.get_by_id.side_effect = autos.get
        service.dependencies.find_edge.return_value = None
        service.dependencies.create.side_effect = lambda values: AutomationDependency(**values)

        edge = await service.create(
            "a", "b", DependencyType.ACTION, DependencyStrength.STRONG, description="reads b's helper"
        )

        assert edge.source_automation_id == "a"
        assert edge.target_automation_id == "b"
        assert edge.connection_id == "conn-1"
        assert edge.active is True


@pytest.mark.asyncio
class TestRemove:
    async def test_deactivates(self, service):
        edge = _edge("a", "b")
        service.dependencies.get_by_id.return_value = edge
        assert (await service.remove(edge.id)).active is False

    async def test_missing(self, service):
        service.dependencies.get_by_id.return_value = None
        with pytest.raises(NotFoundError):
            await service.remove("dep-9")


@pytest.mark.asyncio
class TestResolution:
    async def test_strong_blocks(self, service):
        weak = _edge("a", "t", DependencyStrength.WEAK)
        optional = _edge("b", "t", DependencyStrength.OPTIONAL)
        strong = _edge("c", "t", DependencyStrength.STRONG)
        service.dependencies.incoming.return_value = [weak, optional, strong]

        result = await service.resolve_for_retirement("t")

        assert result["resolved"] == [weak, optional]
        assert result["unresolved"] == [strong]
        assert result["affected_automations"] == ["a", "b", "c"]
        assert result["can_retire"] is False
        assert await service.has_strong_dependencies("t") is True

    async def test_force(self, service):
        service.dependencies.incoming.return_value = [_edge("c", "t", DependencyStrength.STRONG)]
        result = await service.resolve_for_retirement("t", force=True)
        assert result["can_retire"] is True
        assert result["unresolved"] == []

    async def test_no_dependencies(self, service):
        service.dependencies.incoming.return_value = []
        result = await service.resolve_for_retirement("t")
        assert result["can_retire"] is True
        assert await service.has_strong_dependencies("t") is False


@pytest.mark.asyncio
class TestGraph:
    async def test_walks_incoming_edges(self, service):
        incoming = {
            "root": [_edge("a", "root"), _edge("b", "root")],
            "a": [_edge("c", "a")],
            "b": [],
            "c": [_edge("root", "c")],  # cycle back to the root
        }
        service.dependencies.incoming.side_effect = lambda node: incoming.get(node, [])

        graph = await service.build_graph("root")

        depths = {node["id"]: node["depth"] for node in graph["nodes"]}
        assert depths == {"root": 0, "a": 1, "b": 1, "c": 2}
        assert len(graph["edges"]) == 4

    async def test_max_depth(self, service):
        service.dependencies.incoming.side_effect = lambda node: [_edge(node + "+", node)]
        graph = await service.build_graph("x", max_depth=3)
        assert max(node["depth"] for node in graph["nodes"]) == 3
        assert len(graph["edges"]) == 3

    async def test_analyze(self, service):
        incoming = {"t": [_edge("a", "t", DependencyStrength.STRONG), _edge("b", "t")]}
        service.dependencies.incoming.side_effect = lambda node: incoming.get(node, [])
        service.dependencies.outgoing.return_value = [_edge("t", "z")]

        analysis = await service.analyze("t")

        assert analysis["incoming_count"] == 2
        assert analysis["outgoing_count"] == 1
        assert analysis["strong_dependencies"] == 1
        assert analysis["graph_nodes"] == 3
