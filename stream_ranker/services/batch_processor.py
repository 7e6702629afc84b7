# stream_ranker/services/batch_processor.py

from __future__ import annotations

import asyncio
import time
import traceback
from concurrent.futures import ProcessPoolExecutor
from concurrent.futures.process import BrokenProcessPool
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Sequence, Union

from ..config import RankingConfig, logger
from .attribute_parser import preference_rank, resolution_rank, resolve_attributes
from .ranking import deduplicate_candidates, rank_candidates
from .relevance import (
    log_rejection_diagnostics,
    passes_preferences,
    validate_torrent_title,
)
from .scoring import score_torrent_result
from .torrent_data import (
    CandidateStream,
    ExpectedMetadata,
    LookupStrategy,
    RawResult,
)


class BatchStage(str, Enum):
    RECEIVED = "received"
    PER_ITEM = "per_item_processing"
    AGGREGATED = "aggregated"
    DELIVERED = "delivered"
    FAILED = "failed"


class ExecutionMode(str, Enum):
    INLINE = "inline"
    THREAD = "thread"
    PROCESS = "process"


@dataclass(frozen=True)
class BatchRequest:
    """Everything one batch needs, passed by value to the worker."""

    results: Sequence[Union[RawResult, Mapping[str, Any]]]
    expected: ExpectedMetadata
    config: RankingConfig = field(default_factory=RankingConfig)
    trackers: tuple[str, ...] = ()
    strategy: LookupStrategy = LookupStrategy.FREE_TEXT
    season: int | None = None
    episode: int | None = None


@dataclass
class BatchSuccess:
    candidates: list[CandidateStream]
    stage: BatchStage = BatchStage.DELIVERED

    @property
    def ok(self) -> bool:
        return True


@dataclass
class BatchFailure:
    message: str
    context: dict[str, Any] = field(default_factory=dict)
    traceback: str = ""
    stage: BatchStage = BatchStage.FAILED

    @property
    def ok(self) -> bool:
        return False

    @property
    def candidates(self) -> list[CandidateStream]:
        return []


BatchResult = Union[BatchSuccess, BatchFailure]


def _item_title(item: Any) -> str:
    if isinstance(item, RawResult):
        return str(item.title)
    if isinstance(item, Mapping):
        return str(item.get("Title", item.get("title", "Unknown Title")))
    return "Unknown Title"


def _evaluate_item(
    item: RawResult | Mapping[str, Any], request: BatchRequest
) -> tuple[CandidateStream | None, bool]:
    """
    Turns one indexer record into a candidate.

    Returns the candidate (or ``None`` when rejected) and whether the rejection
    came from the title check.
    """
    raw = item if isinstance(item, RawResult) else RawResult.from_indexer(item)
    if raw.title is not None and not isinstance(raw.title, str):
        raise TypeError(f"Record title must be text, got {type(raw.title).__name__}")

    info_hash = raw.content_id
    if not info_hash:
        logger.debug(f"[BATCH] Skipping '{raw.title}': no info-hash or magnet URI.")
        return None, False

    if not validate_torrent_title(
        request.expected,
        raw.title,
        request.strategy,
        request.season,
        request.episode,
    ):
        logger.debug(f"[VALIDATOR] Rejected '{raw.title}' for '{request.expected.title}'.")
        return None, True

    config = request.config
    attributes = resolve_attributes(
        raw, config.preferred_video_qualities, config.preferred_audio_qualities
    )
    if not passes_preferences(raw, attributes, config):
        logger.debug(f"[VALIDATOR] '{raw.title}' filtered by preferences.")
        return None, False

    language = (attributes.language or "").lower()
    preferred_languages = {lang.strip().lower() for lang in config.preferred_languages}
    return (
        CandidateStream(
            raw=raw,
            info_hash=info_hash,
            attributes=attributes,
            resolution_rank=resolution_rank(attributes.resolution),
            video_quality_rank=preference_rank(
                attributes.video_quality, config.preferred_video_qualities
            ),
            audio_quality_rank=preference_rank(
                attributes.audio_quality, config.preferred_audio_qualities
            ),
            has_preferred_language=bool(language)
            and language in preferred_languages,
            trackers=tuple(request.trackers),
        ),
        False,
    )


def process_batch(request: BatchRequest) -> BatchResult:
    """
    Runs one batch: per-record validation, dedup, scoring and ordering.

    A record that raises is logged and dropped; only a problem with the batch
    as a whole (e.g. an invalid configuration) produces a ``BatchFailure``.
    This function never raises.
    """
    start = time.perf_counter()
    stage = BatchStage.RECEIVED
    input_size = 0
    try:
        items = list(request.results)
        input_size = len(items)
        request.config.validate()
        logger.info(
            f"[BATCH] Received {input_size} results for '{request.expected.title}' "
            f"({getattr(request.strategy, 'value', request.strategy)})."
        )

        stage = BatchStage.PER_ITEM
        candidates: list[CandidateStream] = []
        title_rejections: list[str] = []
        for item in items:
            try:
                candidate, title_rejected = _evaluate_item(item, request)
            except Exception as exc:
                logger.error(
                    f"[BATCH] Error processing torrent '{_item_title(item)}': {exc}",
                    exc_info=True,
                )
                continue
            if candidate is not None:
                candidates.append(candidate)
            elif title_rejected:
                title_rejections.append(_item_title(item))

        if items and not candidates and len(title_rejections) == len(items):
            log_rejection_diagnostics(request.expected, title_rejections)

        stage = BatchStage.AGGREGATED
        unique = deduplicate_candidates(candidates)
        for candidate in unique:
            candidate.score = score_torrent_result(candidate.raw, request.expected)
        ranked = rank_candidates(unique, request.config)

        elapsed = time.perf_counter() - start
        logger.info(
            f"[BATCH] Processed {input_size} raw results to {len(ranked)} "
            f"ranked results in {elapsed:.2f} seconds."
        )
        return BatchSuccess(candidates=ranked)
    except Exception as exc:
        logger.error(
            f"[BATCH] Unhandled error during {stage.value} of {input_size} results: {exc}",
            exc_info=True,
        )
        return BatchFailure(
            message=str(exc),
            context={"stage": stage.value, "input_size": input_size},
            traceback=traceback.format_exc(),
        )


def _terminate_workers(pool: ProcessPoolExecutor) -> None:
    terminate = getattr(pool, "terminate_workers", None)
    if terminate is not None:
        terminate()
        return
    # Executors before Python 3.14 only expose their workers privately.
    for process in list((getattr(pool, "_processes", None) or {}).values()):
        process.terminate()


async def run_batch(
    request: BatchRequest, mode: ExecutionMode = ExecutionMode.PROCESS
) -> BatchResult:
    """
    Processes ``request`` off the calling event loop and awaits the outcome.

    In process mode a single-use worker process is spawned for the batch and
    torn down afterwards. If the worker dies or the request cannot be handed
    over, the batch is reported as a ``BatchFailure``; it is never retried.
    If the caller cancels the await (e.g. on a timeout) the worker process is
    terminated rather than left to finish.
    """
    mode = ExecutionMode(mode)
    if mode is ExecutionMode.INLINE:
        return process_batch(request)
    if mode is ExecutionMode.THREAD:
        return await asyncio.to_thread(process_batch, request)

    loop = asyncio.get_running_loop()
    pool = ProcessPoolExecutor(max_workers=1)
    try:
        return await loop.run_in_executor(pool, process_batch, request)
    except asyncio.CancelledError:
        logger.warning("[WORKER] Batch cancelled; terminating worker process.")
        _terminate_workers(pool)
        raise
    except BrokenProcessPool as exc:
        logger.error(f"[WORKER] Worker process terminated abnormally: {exc}")
        return BatchFailure(
            message=f"Worker process terminated abnormally: {exc}",
            context={"stage": "worker", "input_size": len(request.results)},
            traceback=traceback.format_exc(),
        )
    except Exception as exc:
        logger.error(f"[WORKER] Failed to dispatch batch to worker: {exc}", exc_info=True)
        return BatchFailure(
            message=f"Failed to dispatch batch to worker: {exc}",
            context={"stage": "worker", "input_size": len(request.results)},
            traceback=traceback.format_exc(),
        )
    finally:
        pool.shutdown(wait=False, cancel_futures=True)


def candidates_or_empty(result: BatchResult) -> list[CandidateStream]:
    """The ranked candidates of a successful batch, or ``[]`` for a failure."""
    if isinstance(result, BatchFailure):
        logger.warning(
            f"[BATCH] Substituting empty result for failed batch: {result.message} "
            f"(context: {result.context})"
        )
        return []
    return result.candidates
