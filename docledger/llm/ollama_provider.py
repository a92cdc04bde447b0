"""Ollama-based collaborator provider for self-hosted LLM inference.

Uses a local Ollama server. Image documents are passed in the `images`
field, so a vision model (e.g. qwen2.5vl, llava) is needed for scanned
receipts. PDFs can only be handled through their OCR text.

Requires Ollama server running on localhost:11434.
See: https://ollama.ai/
"""

import logging

import httpx
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


class OllamaCompletionProvider(CompletionProvider):
    """Ollama provider for self-hosted LLM inference."""

    def __init__(self, settings: Settings) -> None:
        """Initialize Ollama provider.

        Args:
            settings: Application settings
        """
        super().__init__(settings)
        self._base_url = settings.ollama_base_url
        self._model = settings.ollama_model
        self._client = httpx.Client(timeout=settings.llm_timeout_seconds)  # LLMs can be slow

    @property
    def provider_name(self) -> str:
        """Get provider name for logging/metrics.

        Returns:
            Provider identifier 'ollama'
        """
        return "ollama"

    def is_available(self) -> bool:
        """Check if Ollama server is running and model is available.

        Returns:
            True if Ollama server responds and model is loaded
        """
        try:
            response = self._client.get(f"{self._base_url}/api/tags")
            if response.status_code != 200:
                return False
            models = response.json().get("models", [])
            model_names = [m.get("name", "").split(":")[0] for m in models]
            return self._model.split(":")[0] in model_names
        except httpx.HTTPError:
            return False

    def complete(
        self,
        prompt: str,
        document: DocumentInput | None = None,
        max_tokens: int = 1024,
    ) -> str:
        """Send the prompt (and attached image) to Ollama.

        Args:
            prompt: Instruction text
            document: Document attached in vision mode when it is an image
            max_tokens: Upper bound on the reply length

        Returns:
            Reply text

        Raises:
            CollaboratorError: If the document cannot be sent or all attempts fail
        """
        images: list[str] = []
        if document is not None and document.has_binary:
            if not document.is_image:
                if not document.text:
                    raise CollaboratorError(
                        self.provider_name,
                        f"Cannot read {document.media_type} without OCR text",
                    )
                logger.info(f"Ollama cannot read {document.media_type}; using OCR text only")
            else:
                images.append(document.base64_content())

        try:
            return self._call_ollama_with_retry(prompt, images, max_tokens)
        except (httpx.HTTPError, ValueError) as e:  # ValueError: body is not JSON
            raise CollaboratorError(self.provider_name, f"Completion failed: {e}") from e

    @retry(
        retry=retry_if_exception_type((httpx.HTTPError, httpx.TimeoutException)),
        wait=wait_exponential_jitter(initial=1, max=30),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    def _call_ollama_with_retry(self, prompt: str, images: list[str], max_tokens: int) -> str:
        """Call Ollama API with retry logic for transient errors.

        Args:
            prompt: Prompt for the LLM
            images: Base64-encoded images to attach
            max_tokens: Upper bound on the reply length

        Returns:
            Raw response text from Ollama

        Raises:
            httpx.HTTPError: After all retry attempts exhausted
        """
        payload: dict[str, object] = {
            "model": self._model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": 0,  # Deterministic output
                "num_predict": max_tokens,
            },
        }
        if images:
            payload["images"] = images

        response = self._client.post(f"{self._base_url}/api/generate", json=payload)
        response.raise_for_status()
        result: str = response.json().get("response", "")
        return result
