"""Shared fixtures for unit tests."""

import os
from collections.abc import Callable, Generator

import pytest

from docledger.llm.base import CollaboratorError, CompletionProvider
from docledger.mapping.reference import ReferenceData, load_reference_data
from docledger.shared.config import Settings
from docledger.shared.document import DocumentInput


class FakeProvider(CompletionProvider):
    """Collaborator returning canned replies and recording every call."""

    def __init__(
        self,
        responses: list[str] | None = None,
        error: Exception | None = None,
        settings: Settings | None = None,
    ) -> None:
        super().__init__(settings or Settings())
        self.responses = list(responses or [])
        self.error = error
        self.calls: list[tuple[str, DocumentInput | None, int]] = []

    @property
    def provider_name(self) -> str:
        return "fake"

    def is_available(self) -> bool:
        return True

    def complete(
        self,
        prompt: str,
        document: DocumentInput | None = None,
        max_tokens: int = 1024,
    ) -> str:
        self.calls.append((prompt, document, max_tokens))
        if self.error is not None:
            raise self.error
        if not self.responses:
            raise CollaboratorError(self.provider_name, "no canned response left")
        return self.responses.pop(0)


@pytest.fixture
def clean_env() -> Generator[None, None, None]:
    """Clean environment variables before and after test."""
    original_env = dict(os.environ)
    env_vars = [k for k in os.environ if k.startswith("APP_")]
    for var in env_vars:
        del os.environ[var]
    yield
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def settings() -> Settings:
    """Settings with the packaged reference data and a small worker pool."""
    return Settings(base_currency="SEK", max_line_item_workers=2, reference_data_dir=None)


@pytest.fixture
def reference() -> ReferenceData:
    """Packaged reference tables."""
    return load_reference_data()


@pytest.fixture
def make_provider() -> Callable[..., FakeProvider]:
    """Factory for fake collaborators with canned replies."""
    return FakeProvider


@pytest.fixture
def failing_provider() -> FakeProvider:
    """Collaborator whose every call fails."""
    return FakeProvider(error=CollaboratorError("fake", "service unavailable"))


@pytest.fixture
def text_document() -> DocumentInput:
    """OCR text of a Swedish coffee-shop receipt."""
    return DocumentInput.from_text(
        "ESPRESSO HOUSE\nGötgatan 14, Stockholm\nKVITTO\n2024-03-23 14:32\n"
        "Caffe latte 2 st 98,00\nKanelbulle 2 st 86,00\nTotalt 184,00 kr\n"
        "Moms 12% 19,71\nKort ****4521 GODKÄNT"
    )
