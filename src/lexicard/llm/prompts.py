"""Prompt templates for word enrichment and translation.

All prompt construction goes through these builders so the enrichment
client, the translation pre-pass and tests agree on the wire format.
"""

from textwrap import dedent

from lexicard.models.config import LanguageConfig
from lexicard.services.result_validator import ITEMS_KEY


def build_enrichment_system_prompt(languages: LanguageConfig) -> str:
    """Build the system prompt asking for one JSON record per input word."""
    source = languages.source_language
    target = languages.target_language

    return dedent(f"""
        You are an expert linguist specializing in {source}. Process a list of
        {source} words or phrases and return details for each one.

        Output ONLY a JSON object. NO markdown code blocks. NO explanations.
        The object has a single key "{ITEMS_KEY}" holding an array with exactly
        one record per input item, IN THE SAME ORDER as the input.

        Each record:
        {{
          "source": "the input word",
          "transcription": "romanized pronunciation",
          "translation": "translation into {target}",
          "category": "verb" | "noun" | "adjective" | "phrase" | "other",
          "conjugations": null,
          "examples": [{{"source": "sentence in {source}", "translation": "sentence in {target}"}}]
        }}

        RULES:
        1. "transcription" and "translation" must never be empty
        2. For verbs only, "conjugations" is an object with "past", "present",
           "future" and "imperative", each mapping grammatical person to form;
           use null for any tense that does not exist
        3. For every other category, "conjugations" is null
        4. Provide 2-3 examples, or [] if none are available
    """).strip()


def build_enrichment_prompt(batch: list[str], languages: LanguageConfig) -> str:
    """Build the user prompt listing one batch of source items, numbered."""
    lines = [f"{i}. {item}" for i, item in enumerate(batch, start=1)]
    return (
        f"Process the following {len(batch)} {languages.source_language} "
        f"words/phrases:\n" + "\n".join(lines)
    )


def build_translation_system_prompt(from_language: str, languages: LanguageConfig) -> str:
    """Build the system prompt for the source-language translation pre-pass."""
    source = languages.source_language

    return dedent(f"""
        You are a professional {from_language} to {source} translator.
        Translate each input word into {source}.

        Input: {from_language} words, one per line.
        Output: for each input word, one line with its {source} translations
        separated by commas.

        Important:
        - Do not add any additional text or explanations
        - Preserve the original order of words
        - For verbs, always use the infinitive form
    """).strip()
