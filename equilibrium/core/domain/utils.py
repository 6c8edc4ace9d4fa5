"""Text helpers shared by the domain services.

Stored chunks and user input may carry BOM markers or replacement
characters left over from extraction. They are stripped where text enters
the prompt; the transcript always keeps the user's text as typed.
"""

import unicodedata


def clean_text(text: str, *, normalize: bool = True) -> str:
    """Remove BOM markers and optionally apply NFKC normalization.

    Args:
        text: Input text that may contain BOM or special characters.
        normalize: Whether to apply NFKC normalization.

    Returns:
        Cleaned text.
    """
    if not text:
        return ""

    cleaned = text.replace("\ufeff", "").replace("\ufffd", "")
    if normalize:
        cleaned = unicodedata.normalize("NFKC", cleaned)
    return cleaned


def preview(text: str, limit: int = 50) -> str:
    """Shorten text for log lines."""
    text = " ".join(text.split())
    if len(text) <= limit:
        return text
    return text[:limit] + "..."
