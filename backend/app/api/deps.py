"""Request-scoped wiring: SQLite connection, stores, services and the process-wide LLMService."""
from __future__ import annotations

import logging
import sqlite3
from contextlib import asynccontextmanager
from dataclasses import dataclass
from functools import lru_cache
from typing import AsyncIterator

from fastapi import Depends, Header

from backend.app.config import DEFAULT_DB_PATH, load_llm_config
from backend.app.core.llm_service import LLMService
from backend.app.core.proposal_generator import ProposalGenerator
from backend.app.core.proposal_lifecycle import ProposalLifecycle
from backend.app.core.templates import TemplateService
from backend.app.db.connection import connection_scope
from backend.app.repositories.entities import EntityRepositorySet
from backend.app.repositories.llm_contexts import LLMContextStore
from backend.app.repositories.proposals import ProposalStore

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_llm_service() -> LLMService:
    """Process-wide LLMService built from the environment on first use."""
    return LLMService(load_llm_config())


def get_user_id(x_user_id: str | None = Header(default=None)) -> str | None:
    """Requester id from the ``X-User-Id`` header (None when absent)."""
    if x_user_id is None:
        return None
    return x_user_id.strip() or None


@dataclass
class Services:
    conn: sqlite3.Connection
    store: ProposalStore
    repositories: EntityRepositorySet
    lifecycle: ProposalLifecycle
    templates: TemplateService
    generator: ProposalGenerator
    contexts: LLMContextStore


@asynccontextmanager
async def open_services(llm: LLMService) -> AsyncIterator[Services]:
    """Build the service graph on one connection and close it afterwards."""
    with connection_scope(DEFAULT_DB_PATH) as conn:
        store = ProposalStore(conn)
        repositories = EntityRepositorySet.sqlite(conn)
        lifecycle = ProposalLifecycle(store, repositories)
        templates = TemplateService(store)
        yield Services(
            conn=conn,
            store=store,
            repositories=repositories,
            lifecycle=lifecycle,
            templates=templates,
            generator=ProposalGenerator(lifecycle, templates, repositories, llm),
            contexts=LLMContextStore(conn),
        )


async def get_services(llm: LLMService = Depends(get_llm_service)) -> AsyncIterator[Services]:
    async with open_services(llm) as services:
        yield services
