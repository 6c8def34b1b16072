"""Centralized constants shared across the app."""
from __future__ import annotations

# Author stamped on comments written by the engine itself
SYSTEM_AUTHOR = "system"

# Apply
APPLIED_COMMENT = "Changes applied successfully"

# Generator prompt variables
NO_ENTITY_DATA = "No entity data"
NO_CONTEXT_DATA = "No context data"

# Parser defaults
DEFAULT_PROPOSAL_TITLE = "Untitled Proposal"
DEFAULT_PROPOSAL_DESCRIPTION = "No description provided"
DEFAULT_PROPOSAL_REASON = "No reason provided"

# Fallback proposal (unparsable model output)
FALLBACK_TITLE = "Failed to Parse Proposal"
FALLBACK_DESCRIPTION = "The AI generated a response that could not be parsed as a valid proposal."
FALLBACK_REASON = "Parsing error"

# Relationship types are stored as identifiers
RELATIONSHIP_TYPE_PATTERN = r"^[A-Za-z_][A-Za-z0-9_]*$"

# Response cache
CACHE_MAX_ENTRIES = 512

# System message prepended to /llm/chat requests that carry none
CHAT_SYSTEM_PROMPT = "You are Campaign Codex's AI assistant. The user ID is {user_id}."
