"""SQLite entity and relationship repositories."""
from __future__ import annotations

import asyncio

import pytest

from backend.app.core.error_handling import (
    EntityInUseError,
    EntityNotFoundError,
    ProposalValidationError,
    UnsupportedEntityTypeError,
)
from backend.app.models.proposal import ProposalEntityType, RelationshipChange
from backend.app.repositories.relationships import RelationshipEntityRepository


def _run(coro):
    return asyncio.run(coro)


def _edge(source: str, target: str, kind: str = "LIVES_IN", **props) -> RelationshipChange:
    return RelationshipChange(
        source_id=source,
        source_type=ProposalEntityType.CHARACTER,
        target_id=target,
        target_type=ProposalEntityType.LOCATION,
        relationship_type=kind,
        properties=props,
    )


def test_every_kind_has_a_repository(repositories):
    assert set(repositories.kinds()) == set(ProposalEntityType)
    assert isinstance(repositories.for_kind("relationship"), RelationshipEntityRepository)


def test_unknown_kind_is_unsupported(repositories):
    with pytest.raises(UnsupportedEntityTypeError):
        repositories.for_kind("spaceship")


def test_create_update_get(repositories):
    chars = repositories.for_kind(ProposalEntityType.CHARACTER)
    created = _run(chars.create({"name": "Mira", "level": 2}))
    updated = _run(chars.update(created["id"], {"level": 3, "id": "ignored"}))
    assert updated["id"] == created["id"]
    assert updated["name"] == "Mira"
    assert updated["level"] == 3
    assert _run(chars.get_by_id(created["id"]))["level"] == 3


def test_create_honours_supplied_id(repositories):
    item = _run(repositories.for_kind(ProposalEntityType.ITEM).create({"id": "item-7", "name": "Rope"}))
    assert item["id"] == "item-7"


def test_kinds_are_isolated(repositories):
    created = _run(repositories.for_kind(ProposalEntityType.ITEM).create({"name": "Rope"}))
    assert _run(repositories.for_kind(ProposalEntityType.CHARACTER).get_by_id(created["id"])) is None


def test_update_missing_entity(repositories):
    with pytest.raises(EntityNotFoundError):
        _run(repositories.for_kind(ProposalEntityType.EVENT).update("nope", {"a": 1}))


def test_delete_missing_entity_returns_false(repositories):
    assert _run(repositories.for_kind(ProposalEntityType.POWER).delete("nope")) is False


def test_delete_refused_while_edges_exist(repositories):
    char = _run(repositories.for_kind(ProposalEntityType.CHARACTER).create({"name": "Mira"}))
    loc = _run(repositories.for_kind(ProposalEntityType.LOCATION).create({"name": "Harbor"}))
    edge = _run(repositories.relationships.merge(_edge(char["id"], loc["id"])))

    with pytest.raises(EntityInUseError):
        _run(repositories.for_kind(ProposalEntityType.LOCATION).delete(loc["id"]))

    assert _run(repositories.relationships.delete(edge["id"])) is True
    assert _run(repositories.for_kind(ProposalEntityType.LOCATION).delete(loc["id"])) is True
    assert _run(repositories.for_kind(ProposalEntityType.LOCATION).get_by_id(loc["id"])) is None


class TestRelationships:
    @pytest.fixture
    def pair(self, repositories):
        char = _run(repositories.for_kind(ProposalEntityType.CHARACTER).create({"name": "Mira"}))
        loc = _run(repositories.for_kind(ProposalEntityType.LOCATION).create({"name": "Harbor"}))
        return char["id"], loc["id"]

    def test_merge_is_idempotent_and_replaces_properties(self, repositories, pair):
        first = _run(repositories.relationships.merge(_edge(*pair, since="spring")))
        second = _run(repositories.relationships.merge(_edge(*pair, rent=5)))
        assert first["id"] == second["id"]
        assert second["properties"] == {"rent": 5}
        assert len(_run(repositories.relationships.list_for_entity(pair[0]))) == 1

    def test_distinct_types_are_distinct_edges(self, repositories, pair):
        _run(repositories.relationships.merge(_edge(*pair, kind="LIVES_IN")))
        _run(repositories.relationships.merge(_edge(*pair, kind="OWNS")))
        assert len(_run(repositories.relationships.list_for_entity(pair[1]))) == 2

    @pytest.mark.parametrize("bad", ["", "lives in", "1ST", "OWNS;DROP"])
    def test_invalid_relationship_type(self, repositories, pair, bad):
        with pytest.raises(ProposalValidationError) as exc:
            _run(repositories.relationships.merge(_edge(*pair, kind=bad)))
        assert exc.value.code == "INVALID_RELATIONSHIP_TYPE"

    def test_missing_endpoint(self, repositories, pair):
        with pytest.raises(EntityNotFoundError):
            _run(repositories.relationships.merge(_edge(pair[0], "ghost")))

    def test_relationship_kind_dispatch(self, repositories, pair):
        repo = repositories.for_kind(ProposalEntityType.RELATIONSHIP)
        created = _run(repo.create(_edge(*pair).to_wire()))
        updated = _run(repo.update(created["id"], {"properties": {"note": "x"}}))
        assert updated["properties"] == {"note": "x"}
        assert updated["relationshipType"] == "LIVES_IN"
        assert _run(repo.delete(created["id"])) is True
        assert _run(repo.get_by_id(created["id"])) is None

    def test_relationship_create_needs_endpoints(self, repositories):
        repo = repositories.for_kind(ProposalEntityType.RELATIONSHIP)
        with pytest.raises(ProposalValidationError):
            _run(repo.create({"relationshipType": "KNOWS"}))
