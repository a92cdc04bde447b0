"""Selects the language-model collaborator named in settings.

One provider instance is shared by the classifier, the extractor and the
mapper's account fallback. Providers are looked up by the name used in
APP_LLM_PROVIDER; new backends can be registered at runtime.
"""

import logging

from docledger.llm.base import CompletionProvider
from docledger.llm.ollama_provider import OllamaCompletionProvider
from docledger.llm.openai_provider import OpenAICompletionProvider
from docledger.shared.config import Settings

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Name -> provider class lookup for the collaborator backends."""

    _providers: dict[str, type[CompletionProvider]] = {
        "openai": OpenAICompletionProvider,
        "ollama": OllamaCompletionProvider,
    }

    @classmethod
    def register(cls, name: str, provider_class: type[CompletionProvider]) -> None:
        """Add or replace a backend under name."""
        cls._providers[name] = provider_class
        logger.info(f"Registered collaborator provider: {name}")

    @classmethod
    def get_provider_class(cls, name: str) -> type[CompletionProvider]:
        """Return the class registered under name.

        Raises:
            ValueError: If nothing is registered under name
        """
        try:
            return cls._providers[name]
        except KeyError:
            available = ", ".join(sorted(cls._providers))
            raise ValueError(
                f"Unknown collaborator provider: '{name}'. Available providers: {available}"
            ) from None

    @classmethod
    def list_providers(cls) -> list[str]:
        return list(cls._providers)


def model_for(settings: Settings) -> str:
    """Model name the configured backend will be asked for."""
    if settings.llm_provider == "ollama":
        return settings.ollama_model
    return settings.openai_model


def create_completion_provider(settings: Settings) -> CompletionProvider:
    """Build the shared collaborator for one process.

    An unavailable backend (no OPENAI_API_KEY, Ollama not running) is not an
    error here: every stage falls back to its low-confidence default when a
    call fails, so only a warning is logged.

    Args:
        settings: Application settings (uses llm_provider and the model fields)

    Returns:
        Provider instance

    Raises:
        ValueError: If llm_provider names no registered backend
    """
    name = settings.llm_provider
    provider = ProviderRegistry.get_provider_class(name)(settings)

    if not provider.is_available():
        logger.warning(
            f"Collaborator provider '{name}' is not fully available; classification, "
            f"extraction and account fallback will return review-flagged defaults"
        )

    logger.info(f"Created collaborator provider: {name} (model {model_for(settings)})")
    return provider
