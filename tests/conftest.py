"""Shared fixtures: an in-memory ledger and services wired to a stub model."""

from __future__ import annotations

import pytest
from tinydb.storages import MemoryStorage

from app.config import Settings
from app.db.repository import LedgerRepository
from app.deps import Services, build_services
from app.llm.parser import FinancialParser
from tests.helpers.openai_stub import ChatStub


@pytest.fixture
def repo() -> LedgerRepository:
    repository = LedgerRepository(storage=MemoryStorage)
    yield repository
    repository.close()


@pytest.fixture
def chat() -> ChatStub:
    return ChatStub()


@pytest.fixture
def parser(chat: ChatStub) -> FinancialParser:
    return FinancialParser(api_key="test", model="test-model", client=chat)


@pytest.fixture
def services(repo: LedgerRepository, parser: FinancialParser) -> Services:
    return build_services(Settings(_env_file=None), repo=repo, parser=parser)
