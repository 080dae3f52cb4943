"""Translation pre-pass: input-language words into the source language."""

from typing import Optional

from lexicard.llm.prompts import build_translation_system_prompt
from lexicard.models.config import LanguageConfig
from lexicard.services.exceptions import (
    BackendError,
    ConfigurationError,
    FatalEnrichmentError,
)
from lexicard.services.llm_client import LLMClient
from lexicard.utils.cancellation import CancelToken
from lexicard.utils.language import SCRIPT_LANGUAGE_NAMES
from lexicard.utils.logging import get_logger


logger = get_logger(__name__)


class TranslationError(FatalEnrichmentError):
    """Raised when the pre-pass fails; it makes the whole task pointless."""


def split_translations(text: str) -> list[str]:
    """
    Split a translation reply into individual words.

    Each line holds the comma-separated translations of one input word.

    Example:
        >>> split_translations("חתול, חתלתול\\nכלב")
        ['חתול', 'חתלתול', 'כלב']
    """
    return [
        word.strip()
        for line in text.splitlines()
        for word in line.split(",")
        if word.strip()
    ]


class TranslationClient:
    """Translates a word list into the source language in one request."""

    def __init__(self, llm_client: LLMClient, languages: Optional[LanguageConfig] = None):
        self.llm_client = llm_client
        self.languages = languages or LanguageConfig()

    async def translate(
        self,
        lines: list[str],
        from_script: str,
        token: Optional[CancelToken] = None,
        request_id: Optional[str] = None
    ) -> list[str]:
        """
        Translate input words into the source language.

        Args:
            lines: Cleaned input words
            from_script: Detected script of the input (e.g. "cyrillic")
            token: Cancel token for the owning task
            request_id: Identifier for log correlation

        Returns:
            Source-language words (possibly more than the input: synonyms)

        Raises:
            ConfigurationError, AuthenticationError: Credential problems
            TranslationError: Any other failure, including an empty reply
            EnrichmentCancelled: If the token fired
        """
        problem = self.llm_client.config.credentials_problem()
        if problem:
            raise ConfigurationError(problem)

        from_language = SCRIPT_LANGUAGE_NAMES.get(from_script, from_script)
        system_prompt = build_translation_system_prompt(from_language, self.languages)

        logger.info(
            "translation_started",
            request_id=request_id,
            from_language=from_language,
            to_language=self.languages.source_language,
            word_count=len(lines),
        )

        try:
            reply = await self.llm_client.complete(
                system_prompt,
                "\n".join(lines),
                token=token,
                json_mode=False,
                request_id=request_id,
            )
        except BackendError as e:
            raise TranslationError(f"Translation failed: {e}") from e

        words = split_translations(reply)
        if not words:
            raise TranslationError("Translation failed: the backend returned no words.")

        logger.info("translation_completed", request_id=request_id, word_count=len(words))
        return words
