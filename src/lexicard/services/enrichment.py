"""Enrichment client: one batch of source items in, one result per item out."""

from typing import Optional, Union

from lexicard.llm.prompts import build_enrichment_prompt, build_enrichment_system_prompt
from lexicard.models.config import LanguageConfig
from lexicard.models.word import EnrichedItem, ItemFailure
from lexicard.services.exceptions import (
    BackendError,
    BatchEnrichmentError,
    ConfigurationError,
    ItemValidationError,
    MalformedResponseError,
)
from lexicard.services.llm_client import LLMClient
from lexicard.services import result_validator
from lexicard.utils.cancellation import CancelToken
from lexicard.utils.logging import get_logger


logger = get_logger(__name__)

EnrichmentResult = Union[EnrichedItem, ItemFailure]


class EnrichmentClient:
    """
    Performs one logical "enrich" call per batch.

    Response records are matched to the batch by position: record ``i``
    describes ``batch[i]``. The backend may rewrite the word it echoes
    (for example to an infinitive), so echoed text is never used for
    matching.
    """

    def __init__(self, llm_client: LLMClient, languages: Optional[LanguageConfig] = None):
        self.llm_client = llm_client
        self.languages = languages or LanguageConfig()
        self.system_prompt = build_enrichment_system_prompt(self.languages)

    async def enrich(
        self,
        batch: list[str],
        token: Optional[CancelToken] = None,
        request_id: Optional[str] = None
    ) -> list[EnrichmentResult]:
        """
        Enrich one batch of source items.

        Args:
            batch: Source items, in planning order
            token: Cancel token for the owning task
            request_id: Identifier for log correlation

        Returns:
            One EnrichedItem or ItemFailure per batch position, in order

        Raises:
            ConfigurationError: If credentials or model are unusable
            AuthenticationError: If the backend rejects the credential
            BatchEnrichmentError: If the whole batch failed
            EnrichmentCancelled: If the token fired
        """
        if not batch:
            return []

        problem = self.llm_client.config.credentials_problem()
        if problem:
            raise ConfigurationError(problem)

        prompt = build_enrichment_prompt(batch, self.languages)

        try:
            raw = await self.llm_client.complete(
                self.system_prompt,
                prompt,
                token=token,
                json_mode=True,
                request_id=request_id,
            )
        except BackendError as e:
            raise BatchEnrichmentError(str(e)) from e

        try:
            records = result_validator.parse_items(raw, request_id=request_id)
        except MalformedResponseError as e:
            raise BatchEnrichmentError(str(e)) from e

        return self._match_by_position(batch, records, request_id)

    def _match_by_position(
        self,
        batch: list[str],
        records: list,
        request_id: Optional[str]
    ) -> list[EnrichmentResult]:
        if len(records) > len(batch):
            logger.warning(
                "enrichment_extra_records_ignored",
                request_id=request_id,
                batch_size=len(batch),
                record_count=len(records),
            )

        results: list[EnrichmentResult] = []
        for index, source in enumerate(batch):
            if index >= len(records):
                results.append(ItemFailure(source=source, reason="Missing from response"))
                continue

            record = records[index]
            try:
                item = result_validator.build_item(record, source)
            except ItemValidationError as e:
                logger.warning(
                    "enrichment_item_invalid",
                    request_id=request_id,
                    source=source,
                    error=str(e),
                )
                results.append(ItemFailure(source=source, reason=str(e)))
                continue

            echoed = record.get("source") or record.get("hebrew")
            if echoed and echoed != source:
                logger.debug(
                    "enrichment_source_rewritten",
                    request_id=request_id,
                    source=source,
                    echoed=echoed,
                )
            results.append(item)

        missing = len(batch) - min(len(records), len(batch))
        logger.info(
            "enrichment_batch_parsed",
            request_id=request_id,
            batch_size=len(batch),
            record_count=len(records),
            missing=missing,
            valid=sum(isinstance(r, EnrichedItem) for r in results),
        )
        return results
