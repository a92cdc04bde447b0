"""OpenAI-based collaborator provider.

Uses the OpenAI chat completions API. Image documents are attached as
base64 data URLs and PDFs as inline files, so the model reads the source
document itself rather than only the OCR text.

Includes retry logic with exponential backoff for transient API errors.
"""

import logging
import os
from typing import Any

from openai import OpenAI
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from docledger.llm.base import CollaboratorError, CompletionProvider
from docledger.shared.config import Settings
from docledger.shared.document import DocumentInput

logger = logging.getLogger(__name__)


class OpenAICompletionProvider(CompletionProvider):
    """OpenAI chat-completions provider.

    Requires OPENAI_API_KEY environment variable.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize OpenAI provider.

        Args:
            settings: Application settings
        """
        super().__init__(settings)
        self._client: OpenAI | None = None
        self._model = settings.openai_model

    @property
    def provider_name(self) -> str:
        """Get provider name for logging/metrics.

        Returns:
            Provider identifier 'openai'
        """
        return "openai"

    def is_available(self) -> bool:
        """Check if OpenAI API key is configured.

        Returns:
            True if OPENAI_API_KEY environment variable is set
        """
        return os.getenv("OPENAI_API_KEY") is not None

    def complete(
        self,
        prompt: str,
        document: DocumentInput | None = None,
        max_tokens: int = 1024,
    ) -> str:
        """Send the prompt (and attached document) to OpenAI.

        Args:
            prompt: Instruction text
            document: Document attached in vision mode when it has bytes
            max_tokens: Upper bound on the reply length

        Returns:
            Reply text (empty string when the model returns no content)

        Raises:
            CollaboratorError: If the API key is missing or all attempts fail
        """
        # Check for API key at runtime
        if not self.is_available():
            raise CollaboratorError(
                self.provider_name, "OPENAI_API_KEY environment variable not set"
            )

        api_key = os.getenv("OPENAI_API_KEY")
        if self._client is None or self._client.api_key != api_key:
            self._client = OpenAI(api_key=api_key, timeout=self.settings.llm_timeout_seconds)

        messages = [{"role": "user", "content": self._build_content(prompt, document)}]

        try:
            response = self._call_openai_with_retry(messages, max_tokens)
        except Exception as e:
            raise CollaboratorError(self.provider_name, f"Completion failed: {e}") from e

        content: str | None = response.choices[0].message.content
        return content or ""

    @retry(
        retry=retry_if_exception_type((Exception,)),  # Retry on transient errors
        wait=wait_exponential_jitter(initial=1, max=60),  # Exponential backoff with jitter
        stop=stop_after_attempt(3),  # Max 3 attempts
        reraise=True,  # Re-raise exception after max attempts
    )
    def _call_openai_with_retry(self, messages: list[dict[str, Any]], max_tokens: int) -> Any:
        """Call OpenAI API with retry logic for transient errors.

        Args:
            messages: Chat messages
            max_tokens: Upper bound on the reply length

        Returns:
            OpenAI API response

        Raises:
            Exception: After all retry attempts are exhausted
        """
        if self._client is None:
            raise RuntimeError("OpenAI client not initialized")

        return self._client.chat.completions.create(  # type: ignore[call-overload]
            model=self._model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=0,  # Deterministic output
        )

    def _build_content(
        self, prompt: str, document: DocumentInput | None
    ) -> str | list[dict[str, Any]]:
        """Build message content: plain text, or text plus the attached document."""
        if document is None or not document.has_binary:
            return prompt

        data_url = f"data:{document.media_type};base64,{document.base64_content()}"
        if document.is_image:
            attachment: dict[str, Any] = {"type": "image_url", "image_url": {"url": data_url}}
        else:
            attachment = {
                "type": "file",
                "file": {"filename": document.filename or "document.pdf", "file_data": data_url},
            }
        logger.debug(f"Attaching {document.media_type} document to OpenAI request")
        return [attachment, {"type": "text", "text": prompt}]
