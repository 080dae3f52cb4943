"""Word models: enriched backend results and stored collection records."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from lexicard.utils.ids import generate_word_id


class WordCategory(str, Enum):
    """Closed set of part-of-speech tags a word can carry."""

    VERB = "verb"
    NOUN = "noun"
    ADJECTIVE = "adjective"
    PHRASE = "phrase"
    OTHER = "other"

    @classmethod
    def parse(cls, value: object) -> "WordCategory":
        """
        Map a backend or user-supplied label onto the enumeration.

        Accepts the English values, the Hebrew labels used by the prompts
        and a few Russian spellings. Unknown labels fall back to OTHER.
        """
        if isinstance(value, WordCategory):
            return value
        label = str(value or "").strip().lower()
        return _CATEGORY_ALIASES.get(label, cls.OTHER)


_CATEGORY_ALIASES = {
    "verb": WordCategory.VERB,
    "noun": WordCategory.NOUN,
    "adjective": WordCategory.ADJECTIVE,
    "phrase": WordCategory.PHRASE,
    "other": WordCategory.OTHER,
    "פועל": WordCategory.VERB,
    "שם עצם": WordCategory.NOUN,
    "שם תואר": WordCategory.ADJECTIVE,
    "פרזות": WordCategory.PHRASE,
    "אחר": WordCategory.OTHER,
    "глагол": WordCategory.VERB,
    "существительное": WordCategory.NOUN,
    "прилагательное": WordCategory.ADJECTIVE,
    "фраза": WordCategory.PHRASE,
}


class Conjugations(BaseModel):
    """Verb conjugation table, each tense keyed by grammatical person."""

    past: Optional[dict[str, str]] = None
    present: Optional[dict[str, str]] = None
    future: Optional[dict[str, str]] = None
    imperative: Optional[dict[str, str]] = None

    @field_validator("past", "present", "future", "imperative", mode="before")
    @classmethod
    def keep_string_forms(cls, v):
        if not isinstance(v, dict):
            return None
        forms = {str(k): str(f) for k, f in v.items() if isinstance(f, str) and f.strip()}
        return forms or None

    def is_empty(self) -> bool:
        return not any((self.past, self.present, self.future, self.imperative))


class Example(BaseModel):
    """Usage example as a source/translation sentence pair."""

    source: str
    translation: str


class EnrichedItem(BaseModel):
    """
    Validated enrichment result for one source item.

    Only items with non-empty translation and transcription exist; anything
    less is reported as an ItemFailure instead. The conjugation table is
    only meaningful for verbs and is dropped for every other category.
    """

    source: str = Field(..., min_length=1, description="Source word or phrase")
    transcription: str = Field(..., description="Romanized pronunciation")
    translation: str = Field(..., description="Translation into the target language")
    category: WordCategory = Field(default=WordCategory.OTHER)
    conjugations: Optional[Conjugations] = Field(default=None)
    examples: list[Example] = Field(default_factory=list)

    @field_validator("source", "transcription", "translation", mode="before")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("transcription", "translation")
    @classmethod
    def require_text(cls, v: str, info) -> str:
        if not v:
            raise ValueError(f"{info.field_name} must not be empty")
        return v

    @field_validator("category", mode="before")
    @classmethod
    def parse_category(cls, v):
        return WordCategory.parse(v)

    @model_validator(mode="after")
    def conjugations_only_for_verbs(self) -> "EnrichedItem":
        if self.category != WordCategory.VERB or (
            self.conjugations is not None and self.conjugations.is_empty()
        ):
            self.conjugations = None
        return self

    @property
    def pair_key(self) -> tuple[str, str]:
        """Dedup key for structured (source, translation) pairs."""
        return (self.source, self.translation)


class ItemFailure(BaseModel):
    """A source item the backend did not return a usable record for."""

    source: str
    reason: str


class Word(EnrichedItem):
    """A word stored in the collection."""

    id: str = Field(default_factory=generate_word_id)
    date_added: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    is_learned: bool = False
    learning_stage: int = Field(default=0, ge=0, le=5)

    @classmethod
    def from_item(cls, item: EnrichedItem) -> "Word":
        return cls(**item.model_dump())
