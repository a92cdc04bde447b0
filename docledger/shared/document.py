"""Source document handed to the pipeline.

A document is either raw bytes with a media type (scanned image or PDF),
plain OCR text, or both (bytes with supplementary OCR text).
"""

import base64
from pathlib import PurePath

from pydantic import BaseModel, ConfigDict, model_validator

_MEDIA_TYPES = {
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "pdf": "application/pdf",
}


def media_type_for(filename: str | None) -> str:
    """Guess the media type from a file name; unknown extensions are treated as JPEG."""
    extension = PurePath(filename or "").suffix.lstrip(".").lower()
    return _MEDIA_TYPES.get(extension, "image/jpeg")


class DocumentInput(BaseModel):
    """Document bytes and/or text.

    Attributes:
        content: Raw document bytes, if available
        media_type: Declared media type of content
        text: OCR or plain text of the document
        filename: Original file name (informational)
    """

    model_config = ConfigDict(frozen=True)

    content: bytes | None = None
    media_type: str | None = None
    text: str | None = None
    filename: str | None = None

    @model_validator(mode="after")
    def _require_content_or_text(self) -> "DocumentInput":
        if not self.content and not (self.text and self.text.strip()):
            raise ValueError("Document needs content bytes or text")
        return self

    @classmethod
    def from_bytes(
        cls,
        content: bytes,
        filename: str | None = None,
        media_type: str | None = None,
        text: str | None = None,
    ) -> "DocumentInput":
        """Build a document from file bytes, deriving the media type from the name."""
        return cls(
            content=content,
            media_type=media_type or media_type_for(filename),
            text=text,
            filename=filename,
        )

    @classmethod
    def from_text(cls, text: str) -> "DocumentInput":
        """Build a text-only document."""
        return cls(text=text)

    @property
    def has_binary(self) -> bool:
        return bool(self.content)

    @property
    def is_image(self) -> bool:
        return self.has_binary and (self.media_type or "").startswith("image/")

    def text_excerpt(self, limit: int) -> str:
        """Return the document text truncated to limit characters."""
        return (self.text or "")[:limit]

    def base64_content(self) -> str:
        return base64.b64encode(self.content or b"").decode("ascii")
