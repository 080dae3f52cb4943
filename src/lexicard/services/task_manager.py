"""Background task manager for word enrichment.

One TaskManager is created per process and handed to whatever starts or
cancels tasks. Each task runs as its own asyncio task; the manager owns
the registry of task snapshots, the per-task cancel tokens and the
observers that are told about every state change.

Lifecycle of a task::

    pending -> running -> completed | failed

Cancellation is not a state: the worker stops where it is and the task is
marked ``cancelled`` without an error.
"""

import asyncio
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol, Sequence

from lexicard.models.config import BatchConfig, Config, LanguageConfig
from lexicard.models.task import Task, TaskStatus, TaskSummary
from lexicard.models.word import EnrichedItem, ItemFailure
from lexicard.services.batch_planner import BatchPlan, BatchPlanner, normalize_lines
from lexicard.services.enrichment import EnrichmentClient
from lexicard.services.exceptions import (
    ConfigurationError,
    EnrichmentCancelled,
    FatalEnrichmentError,
)
from lexicard.services.input_parser import RejectedLine, is_structured, parse_structured
from lexicard.services.llm_client import LLMClient
from lexicard.services.translation import TranslationClient
from lexicard.services.word_collection import WordSink
from lexicard.utils.cancellation import CancelToken
from lexicard.utils.language import detect_script
from lexicard.utils.logging import get_logger


logger = get_logger(__name__)


class TaskObserver(Protocol):
    """Receives a snapshot every time a task changes."""

    def on_progress(self, task_id: str, snapshot: Task) -> None:
        ...


class TaskManager:
    """
    Owns background enrichment tasks from submission to terminal state.

    Example:
        >>> manager = TaskManager.from_config(config, collection)
        >>> task_id = manager.start("foo\\nbar")
        >>> task = await manager.wait(task_id)
        >>> task.status, task.added
        (<TaskStatus.COMPLETED: 'completed'>, 2)
    """

    def __init__(
        self,
        collection: WordSink,
        enrichment_client: EnrichmentClient,
        translation_client: Optional[TranslationClient] = None,
        batch_config: Optional[BatchConfig] = None,
        languages: Optional[LanguageConfig] = None
    ):
        """
        Initialize task manager.

        Args:
            collection: Shared word collection tasks merge into
            enrichment_client: Client used for every batch
            translation_client: Client for the source-language pre-pass
                (input in another script fails the task without one)
            batch_config: Batch size and inter-batch throttling
            languages: Source script used for input detection
        """
        self.collection = collection
        self.enrichment_client = enrichment_client
        self.translation_client = translation_client
        self.batch_config = batch_config or BatchConfig()
        self.languages = languages or LanguageConfig()
        self.planner = BatchPlanner(self.batch_config.batch_size)

        self._tasks: dict[str, Task] = {}
        self._tokens: dict[str, CancelToken] = {}
        self._workers: dict[str, asyncio.Task] = {}
        self._observers: list[TaskObserver] = []

    @classmethod
    def from_config(cls, config: Config, collection: WordSink) -> "TaskManager":
        """Wire up clients from a loaded configuration."""
        llm_client = LLMClient(config.llm, config.retry)
        return cls(
            collection=collection,
            enrichment_client=EnrichmentClient(llm_client, config.languages),
            translation_client=TranslationClient(llm_client, config.languages),
            batch_config=config.batch,
            languages=config.languages,
        )

    # ------------------------------------------------------------------
    # Caller-facing operations
    # ------------------------------------------------------------------

    def subscribe(self, observer: TaskObserver) -> Callable[[], None]:
        """
        Register an observer for task changes.

        Returns:
            Function that removes the observer again
        """
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def start(self, raw_input: str) -> str:
        """
        Register a task for raw input and schedule its worker.

        Must be called from a running event loop. Returns before any
        network activity; the task is observable as ``pending`` at once.

        Args:
            raw_input: Words one per line, or pre-structured lines

        Returns:
            Task identifier

        Raises:
            ValueError: If the input is blank (no task is created)
        """
        if not raw_input or not raw_input.strip():
            raise ValueError("Nothing to process: input is empty")

        loop = asyncio.get_running_loop()

        task = Task()
        self._tasks[task.id] = task
        self._tokens[task.id] = CancelToken()

        worker = loop.create_task(self._run(task.id, raw_input), name=f"enrich-{task.id[:8]}")
        self._workers[task.id] = worker
        worker.add_done_callback(lambda _: self._workers.pop(task.id, None))

        logger.info("task_submitted", task_id=task.id, input_length=len(raw_input))
        self._notify(task)
        return task.id

    def cancel(self, task_id: str) -> bool:
        """
        Request cancellation of a task. Idempotent.

        Returns:
            True if the task exists and is not terminal, False otherwise
        """
        task = self._tasks.get(task_id)
        if task is None or task.is_terminal:
            return False

        if not task.cancel_requested:
            self._update(task_id, cancel_requested=True)
            logger.info("task_cancel_requested", task_id=task_id, status=task.status.value)
        self._tokens[task_id].cancel()
        return True

    def query(self, task_id: str) -> Optional[Task]:
        """Return a snapshot of the task, or None if unknown."""
        task = self._tasks.get(task_id)
        return task.model_copy(deep=True) if task is not None else None

    def list_tasks(self) -> list[TaskSummary]:
        """Summaries of all registered tasks, oldest first."""
        return [TaskSummary.from_task(task) for task in self._tasks.values()]

    def clear_completed(self, include_cancelled: bool = False) -> int:
        """
        Remove completed and failed tasks from the registry.

        Args:
            include_cancelled: Also remove cancelled tasks whose worker has stopped

        Returns:
            Number of tasks removed
        """
        removable = [
            task_id for task_id, task in self._tasks.items()
            if task.is_terminal
            or (include_cancelled and task.cancelled and task_id not in self._workers)
        ]
        for task_id in removable:
            del self._tasks[task_id]
            self._tokens.pop(task_id, None)

        if removable:
            logger.info("tasks_cleared", count=len(removable))
        return len(removable)

    @property
    def is_busy(self) -> bool:
        """True while any task is pending or running."""
        return any(task.is_active for task in self._tasks.values())

    async def wait(self, task_id: str) -> Optional[Task]:
        """Wait for a task's worker to stop and return the final snapshot."""
        worker = self._workers.get(task_id)
        if worker is not None:
            await asyncio.wait({worker})
        return self.query(task_id)

    async def shutdown(self) -> None:
        """Cancel every active task and wait for the workers to stop."""
        for task_id, task in list(self._tasks.items()):
            if not task.is_terminal:
                self.cancel(task_id)
        workers = list(self._workers.values())
        if workers:
            await asyncio.wait(workers)

    # ------------------------------------------------------------------
    # State updates
    # ------------------------------------------------------------------

    def _update(self, task_id: str, **changes) -> Task:
        """Replace the task with an updated copy and notify observers."""
        updated = self._tasks[task_id].model_copy(update=changes)
        self._tasks[task_id] = updated
        self._notify(updated)
        return updated

    def _notify(self, task: Task) -> None:
        for observer in list(self._observers):
            try:
                observer.on_progress(task.id, task.model_copy(deep=True))
            except Exception as e:
                logger.error("task_observer_failed", task_id=task.id, error=str(e))

    def _record_batch(
        self,
        task_id: str,
        attempted: int,
        added: int,
        failed_sources: list[str],
        planned: int
    ) -> Task:
        task = self._tasks[task_id]
        processed = task.processed_items + attempted
        # 100 is reserved for the completed state
        progress = min(99, processed * 100 // planned) if planned else 0
        return self._update(
            task_id,
            processed_items=processed,
            added=task.added + added,
            failed=task.failed + len(failed_sources),
            failed_items=task.failed_items + failed_sources,
            progress=max(task.progress, progress),
        )

    def _complete(self, task_id: str) -> None:
        task = self._update(
            task_id,
            status=TaskStatus.COMPLETED,
            progress=100,
            finished_at=datetime.now(timezone.utc),
        )
        logger.info(
            "task_completed",
            task_id=task_id,
            outcome=task.outcome,
            total_items=task.total_items,
            added=task.added,
            skipped=task.skipped,
            failed=task.failed,
        )

    def _fail(self, task_id: str, message: str, sources: Sequence[str] = ()) -> None:
        """Mark the task failed; unaccounted trailing sources are booked as failed items."""
        task = self._tasks[task_id]
        unaccounted = task.total_items - task.added - task.skipped - task.failed
        changes = {
            "status": TaskStatus.FAILED,
            "error": message,
            "finished_at": datetime.now(timezone.utc),
        }
        if unaccounted > 0:
            changes["failed"] = task.failed + unaccounted
            changes["failed_items"] = task.failed_items + list(sources)[-unaccounted:]
        self._update(task_id, **changes)
        logger.error("task_failed", task_id=task_id, error=message)

    def _mark_cancelled(self, task_id: str) -> None:
        task = self._update(task_id, cancelled=True, cancel_requested=True)
        logger.info(
            "task_cancelled",
            task_id=task_id,
            status=task.status.value,
            processed_items=task.processed_items,
            added=task.added,
        )

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    async def _run(self, task_id: str, raw_input: str) -> None:
        token = self._tokens[task_id]
        lines: list[str] = []

        try:
            token.raise_if_cancelled()
            self._update(task_id, status=TaskStatus.RUNNING)
            logger.info("task_started", task_id=task_id)

            lines = normalize_lines(raw_input)
            if not lines:
                raise FatalEnrichmentError("No valid source items in input.")

            if is_structured(lines):
                await self._run_structured(task_id, lines, token)
            else:
                await self._run_plain(task_id, lines, token)

        except EnrichmentCancelled:
            self._mark_cancelled(task_id)
        except FatalEnrichmentError as e:
            self._fail(task_id, str(e), lines)
        except Exception as e:
            logger.exception("task_crashed", task_id=task_id, error=str(e))
            self._fail(task_id, f"Unexpected error: {e}", lines)

    async def _run_plain(self, task_id: str, lines: list[str], token: CancelToken) -> None:
        self._update(task_id, input_mode="plain", total_items=len(lines))

        problem = self.enrichment_client.llm_client.config.credentials_problem()
        if problem:
            raise ConfigurationError(problem)

        script = detect_script(lines)
        if script is not None and script != self.languages.source_script:
            if self.translation_client is None:
                raise ConfigurationError(
                    f"Input is {script} text but no translation backend is configured."
                )
            lines = await self.translation_client.translate(
                lines, script, token=token, request_id=f"{task_id}:translate"
            )

        plan = self.planner.plan(lines, self.collection.existing_keys(structured=False))
        self._update(task_id, total_items=len(lines), skipped=plan.skipped_count)

        logger.info(
            "task_planned",
            task_id=task_id,
            total_items=len(lines),
            skipped=plan.skipped_count,
            batches=len(plan.batches),
        )

        await self._process_batches(task_id, plan, token)

    async def _process_batches(self, task_id: str, plan: BatchPlan[str], token: CancelToken) -> None:
        planned = plan.item_count
        last_index = len(plan.batches) - 1

        for index, batch in enumerate(plan.batches):
            token.raise_if_cancelled()

            try:
                results = await self.enrichment_client.enrich(
                    batch, token=token, request_id=f"{task_id}:{index}"
                )
                items = [r for r in results if isinstance(r, EnrichedItem)]
                failures = [r.source for r in results if isinstance(r, ItemFailure)]
                self.collection.merge(items)

            except (EnrichmentCancelled, FatalEnrichmentError) as e:
                if isinstance(e, FatalEnrichmentError):
                    unattempted = [item for later in plan.batches[index:] for item in later]
                    task = self._tasks[task_id]
                    self._update(
                        task_id,
                        failed=task.failed + len(unattempted),
                        failed_items=task.failed_items + unattempted,
                    )
                raise

            except Exception as e:
                logger.warning(
                    "task_batch_failed",
                    task_id=task_id,
                    batch_index=index,
                    batch_size=len(batch),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                self._record_batch(task_id, len(batch), 0, list(batch), planned)

            else:
                if failures:
                    logger.warning(
                        "task_batch_partial",
                        task_id=task_id,
                        batch_index=index,
                        failed_items=failures,
                    )
                task = self._record_batch(task_id, len(batch), len(items), failures, planned)
                logger.info(
                    "task_batch_completed",
                    task_id=task_id,
                    batch_index=index,
                    added=len(items),
                    failed=len(failures),
                    progress=task.progress,
                )

            if index < last_index:
                await token.sleep(self.batch_config.delay_after(index))

        self._complete(task_id)

    async def _run_structured(self, task_id: str, lines: list[str], token: CancelToken) -> None:
        parsed = parse_structured(lines, self.languages.source_script)
        items = [p for p in parsed if isinstance(p, EnrichedItem)]
        rejected = [p.source for p in parsed if isinstance(p, RejectedLine)]

        self._update(
            task_id,
            input_mode="structured",
            total_items=len(lines),
            failed=len(rejected),
            failed_items=rejected,
        )
        if rejected:
            logger.warning("task_structured_lines_rejected", task_id=task_id, rejected=rejected)

        if not items:
            raise FatalEnrichmentError("No valid source items in structured input.")

        plan = self.planner.plan(
            items,
            self.collection.existing_keys(structured=True),
            key=lambda item: item.pair_key,
        )
        self._update(task_id, skipped=plan.skipped_count)

        planned = plan.item_count
        for batch in plan.batches:
            token.raise_if_cancelled()
            self.collection.merge(batch)
            self._record_batch(task_id, len(batch), len(batch), [], planned)
            await asyncio.sleep(0)

        self._complete(task_id)
