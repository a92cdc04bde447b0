"""Abstract base class for the language-model collaborator.

The same collaborator classifies documents, extracts fields and suggests
fallback ledger accounts. It only ever returns free text; turning that text
into structured data is the job of each pipeline stage.

Based on Strategy Pattern:
https://refactoring.guru/design-patterns/strategy/python
"""

from abc import ABC, abstractmethod

from docledger.shared.config import Settings
from docledger.shared.document import DocumentInput


class CollaboratorError(Exception):
    """Raised when the collaborator call cannot be completed.

    Covers missing configuration, transport failures after retries and
    documents the provider cannot read.
    """

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class CompletionProvider(ABC):
    """Abstract base class for collaborator providers.

    Example implementations:
    - OpenAICompletionProvider: OpenAI API (cloud-based, vision capable)
    - OllamaCompletionProvider: self-hosted Ollama server
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize provider with settings.

        Args:
            settings: Application settings
        """
        self.settings = settings

    @abstractmethod
    def complete(
        self,
        prompt: str,
        document: DocumentInput | None = None,
        max_tokens: int = 1024,
    ) -> str:
        """Send a prompt, optionally with the document attached, and return the reply text.

        Args:
            prompt: Instruction text (already contains any OCR text to consider)
            document: Document whose bytes are attached in vision mode
            max_tokens: Upper bound on the reply length

        Returns:
            Raw reply text

        Raises:
            CollaboratorError: If the call cannot be completed
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this provider is available/configured.

        Returns:
            True if provider can be used, False otherwise
        """
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Get provider name for logging/metrics.

        Returns:
            Provider identifier (e.g., 'openai', 'ollama')
        """
        pass
