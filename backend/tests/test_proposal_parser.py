"""Proposal response parser: default filling, lenient entries, fallback on bad output."""
from backend.app.constants import FALLBACK_TITLE, SYSTEM_AUTHOR
from backend.app.core.proposal_parser import (
    FallbackProposal,
    ParsedProposal,
    parse_proposal_response,
)
from backend.app.models.proposal import ProposalEntityType, ProposalType


def test_minimal_update_response():
    outcome = parse_proposal_response(
        '{"type":"update","title":"T","changes":[]}', ProposalEntityType.CHARACTER, "c-1"
    )
    assert isinstance(outcome, ParsedProposal)
    draft = outcome.draft
    assert draft.type == ProposalType.UPDATE
    assert draft.title == "T"
    assert draft.changes == []
    assert draft.entity_type == ProposalEntityType.CHARACTER
    assert draft.entity_id == "c-1"


def test_missing_fields_get_defaults():
    outcome = parse_proposal_response("{}", ProposalEntityType.ITEM)
    assert isinstance(outcome, ParsedProposal)
    draft = outcome.draft
    assert draft.type == ProposalType.UPDATE
    assert draft.title == "Untitled Proposal"
    assert draft.description == "No description provided"
    assert draft.reason == "No reason provided"
    assert draft.changes == []
    assert draft.relationship_changes == []


def test_type_is_case_insensitive_and_unknown_defaults_to_update():
    assert parse_proposal_response('{"type": "CREATE"}', ProposalEntityType.ITEM).draft.type == ProposalType.CREATE
    assert parse_proposal_response('{"type": "merge"}', ProposalEntityType.ITEM).draft.type == ProposalType.UPDATE


def test_fenced_response_with_changes():
    raw = (
        "Here is my proposal:\n```json\n"
        '{"type": "create", "title": "New blade", "changes": ['
        '{"field": "name", "newValue": "Dawnbreaker", "description": "Name"},'
        '{"field": "damage", "oldValue": null, "newValue": 12}'
        "]}\n```"
    )
    outcome = parse_proposal_response(raw, ProposalEntityType.ITEM)
    assert isinstance(outcome, ParsedProposal)
    assert [c.field for c in outcome.draft.changes] == ["name", "damage"]
    assert outcome.draft.changes[1].new_value == 12


def test_malformed_entries_are_dropped_and_counted():
    raw = (
        '{"type": "relate", "changes": [{"field": "ok", "newValue": 1}, {"field": "no value"}, "junk"],'
        ' "relationshipChanges": ['
        '{"sourceId": "a", "sourceType": "character", "targetId": "b", "targetType": "location",'
        ' "relationshipType": "LIVES_IN"},'
        '{"sourceId": "a", "sourceType": "spaceship", "targetId": "b", "targetType": "location",'
        ' "relationshipType": "DOCKED_AT"}'
        "]}"
    )
    outcome = parse_proposal_response(raw, ProposalEntityType.RELATIONSHIP)
    assert isinstance(outcome, ParsedProposal)
    assert len(outcome.draft.changes) == 1
    assert outcome.dropped_changes == 2
    assert len(outcome.draft.relationship_changes) == 1
    assert outcome.dropped_relationship_changes == 1
    assert outcome.draft.relationship_changes[0].relationship_type == "LIVES_IN"


def test_array_response_uses_first_object():
    outcome = parse_proposal_response('[1, {"title": "First"}, {"title": "Second"}]', ProposalEntityType.EVENT)
    assert isinstance(outcome, ParsedProposal)
    assert outcome.draft.title == "First"


def test_unparsable_prose_yields_fallback_with_raw_text():
    raw = "I think the character should be braver, honestly."
    outcome = parse_proposal_response(raw, ProposalEntityType.CHARACTER)
    assert isinstance(outcome, FallbackProposal)
    draft = outcome.draft
    assert draft.title == FALLBACK_TITLE
    assert draft.type == ProposalType.CREATE
    assert len(draft.comments) == 1
    assert raw in draft.comments[0].content
    assert draft.comments[0].created_by == SYSTEM_AUTHOR
    assert draft.metadata["parseError"] == outcome.error


def test_fallback_for_existing_entity_is_an_update():
    outcome = parse_proposal_response("not json", ProposalEntityType.LOCATION, "loc-9")
    assert isinstance(outcome, FallbackProposal)
    assert outcome.draft.type == ProposalType.UPDATE
    assert outcome.draft.entity_id == "loc-9"


def test_scalar_json_yields_fallback():
    outcome = parse_proposal_response("42", ProposalEntityType.POWER)
    assert isinstance(outcome, FallbackProposal)
    assert "42" in outcome.draft.comments[0].content


def test_oversized_integer_yields_fallback():
    raw = '{"title": "T", "changes": [{"field": "hp", "newValue": ' + "9" * 5000 + "}]}"
    outcome = parse_proposal_response(raw, ProposalEntityType.CHARACTER, "c-1")
    assert isinstance(outcome, FallbackProposal)
    assert outcome.draft.type == ProposalType.UPDATE
    assert outcome.draft.metadata["parseError"]


def test_deeply_nested_input_yields_fallback():
    raw = "[" * 100000 + "]" * 100000
    outcome = parse_proposal_response(raw, ProposalEntityType.ITEM)
    assert isinstance(outcome, FallbackProposal)
    assert outcome.draft.title == FALLBACK_TITLE
