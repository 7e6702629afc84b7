import asyncio
import base64
import concurrent.futures
import logging
from unittest.mock import Mock
from concurrent.futures.process import BrokenProcessPool

import pytest

from stream_ranker.config import RankingConfig
from stream_ranker.services import batch_processor
from stream_ranker.services.batch_processor import (
    BatchFailure,
    BatchRequest,
    BatchSuccess,
    ExecutionMode,
    candidates_or_empty,
    process_batch,
    run_batch,
)
from stream_ranker.services.torrent_data import (
    ExpectedMetadata,
    LookupStrategy,
    RawResult,
)


def _titles(result):
    return [c.title for c in result.candidates]


def test_valid_records_are_ranked_by_seeders(matrix, make_record):
    request = BatchRequest(
        results=[
            make_record("The Matrix 1999 720p", Seeders=5),
            make_record("The.Matrix.1999.1080p.BluRay.x264-GROUP", Seeders=50),
            make_record("Matrix Revolutions 2003", Seeders=900),
        ],
        expected=matrix,
    )

    result = process_batch(request)

    assert isinstance(result, BatchSuccess)
    assert result.ok
    assert _titles(result) == [
        "The.Matrix.1999.1080p.BluRay.x264-GROUP",
        "The Matrix 1999 720p",
    ]
    best = result.candidates[0]
    assert best.attributes.resolution == "1080p"
    assert best.attributes.video_quality == "bluray"
    assert best.resolution_rank == 3
    assert best.score > 0


def test_faulty_record_is_dropped_not_fatal(matrix, make_record, caplog):
    records = [
        make_record("The Matrix 1999 720p"),
        make_record("The Matrix 1999 1080p", Seeders="lots"),
        make_record(42),
        make_record("The Matrix 1999 2160p"),
    ]

    with caplog.at_level(logging.ERROR):
        result = process_batch(BatchRequest(results=records, expected=matrix))

    assert result.ok
    assert len(result.candidates) == 2
    assert "Error processing torrent 'The Matrix 1999 1080p'" in caplog.text
    assert "Error processing torrent '42'" in caplog.text


def test_null_title_record_yields_n_minus_one(matrix, make_record):
    records = [make_record("The Matrix 1999 720p") for _ in range(3)]
    records.append(make_record(None))

    result = process_batch(BatchRequest(results=records, expected=matrix))

    assert result.ok
    assert len(result.candidates) == 3


def test_duplicate_identifier_keeps_first_occurrence(matrix, make_record):
    records = [
        make_record("The Matrix 1999 720p", InfoHash="ABC123", Seeders=1),
        make_record("The Matrix 1999 2160p Remux", InfoHash="abc123", Seeders=500),
    ]

    result = process_batch(BatchRequest(results=records, expected=matrix))

    assert [c.info_hash for c in result.candidates] == ["abc123"]
    assert _titles(result) == ["The Matrix 1999 720p"]


def test_rejected_record_does_not_claim_identifier(matrix, make_record):
    records = [
        make_record("Some Other Movie 1999", InfoHash="abc123"),
        make_record("The Matrix 1999 1080p", InfoHash="abc123"),
    ]

    result = process_batch(BatchRequest(results=records, expected=matrix))

    assert _titles(result) == ["The Matrix 1999 1080p"]


def test_identifier_from_magnet_uri(matrix, make_record):
    record = make_record(
        "The Matrix 1999 1080p",
        InfoHash=None,
        MagnetUri="magnet:?xt=urn:btih:FEEDBEEF&dn=matrix",
    )
    no_id = make_record("The Matrix 1999 720p", InfoHash=None)

    result = process_batch(BatchRequest(results=[record, no_id], expected=matrix))

    assert [c.info_hash for c in result.candidates] == ["feedbeef"]


def test_base32_magnet_dedups_against_hex_identifier(matrix, make_record):
    hex_hash = "0123456789abcdef0123456789abcdef01234567"
    base32_hash = base64.b32encode(bytes.fromhex(hex_hash)).decode()
    records = [
        make_record("The Matrix 1999 1080p", InfoHash=hex_hash.upper(), Seeders=5),
        make_record(
            "The Matrix 1999 2160p",
            InfoHash=None,
            MagnetUri=f"magnet:?xt=urn:btih:{base32_hash}&dn=matrix",
            Seeders=50,
        ),
    ]

    result = process_batch(BatchRequest(results=records, expected=matrix))

    assert [c.info_hash for c in result.candidates] == [hex_hash]
    assert _titles(result) == ["The Matrix 1999 1080p"]


def test_trackers_and_cap_are_applied(matrix, make_raw):
    records = [make_raw("The Matrix 1999 1080p", seeders=i) for i in range(6)]
    request = BatchRequest(
        results=records,
        expected=matrix,
        config=RankingConfig(max_result_count=2),
        trackers=("udp://tracker.example:1337",),
    )

    result = process_batch(request)

    assert [c.raw.seeders for c in result.candidates] == [5, 4]
    assert result.candidates[0].magnet_uri.endswith(
        "&tr=udp%3A%2F%2Ftracker.example%3A1337"
    )


def test_identifier_seeded_strategy_relaxes_title_check(make_raw):
    expected = ExpectedMetadata(title="The Matrix", imdb_id="tt0133093")
    records = [make_raw("tt0133093 1080p")]

    seeded = process_batch(
        BatchRequest(
            results=records,
            expected=expected,
            strategy=LookupStrategy.IDENTIFIER_SEEDED,
        )
    )
    free_text = process_batch(BatchRequest(results=records, expected=expected))

    assert len(seeded.candidates) == 1
    assert free_text.candidates == []


def test_preferred_language_flag(matrix, make_raw):
    request = BatchRequest(
        results=[make_raw("The Matrix 1999 1080p English")],
        expected=matrix,
        config=RankingConfig(preferred_languages=("english",)),
    )

    result = process_batch(request)

    assert result.candidates[0].has_preferred_language is True


def test_invalid_config_is_a_batch_failure(matrix, make_raw):
    request = BatchRequest(
        results=[make_raw(), make_raw()],
        expected=matrix,
        config=RankingConfig(min_seeders=-1),
    )

    result = process_batch(request)

    assert isinstance(result, BatchFailure)
    assert not result.ok
    assert result.candidates == []
    assert result.context == {"stage": "received", "input_size": 2}
    assert "min_seeders" in result.message
    assert "RankingConfigError" in result.traceback


def test_empty_batch_is_an_empty_success(matrix):
    result = process_batch(BatchRequest(results=[], expected=matrix))

    assert isinstance(result, BatchSuccess)
    assert result.candidates == []


def test_all_rejected_batch_logs_diagnostics(matrix, make_raw, caplog):
    with caplog.at_level(logging.INFO):
        result = process_batch(
            BatchRequest(results=[make_raw("Unrelated Film 2010")], expected=matrix)
        )

    assert result.ok
    assert result.candidates == []
    assert "Relevance Filter Diagnostics" in caplog.text


@pytest.mark.asyncio
@pytest.mark.parametrize("mode", list(ExecutionMode))
async def test_run_batch_modes_agree(mode, matrix, make_raw):
    records = [
        make_raw("The Matrix 1999 720p", seeders=3),
        make_raw("The Matrix 1999 1080p", seeders=30),
        make_raw("Another Film 1999", seeders=300),
    ]
    request = BatchRequest(results=tuple(records), expected=matrix)

    result = await run_batch(request, mode)

    assert result.ok
    assert _titles(result) == ["The Matrix 1999 1080p", "The Matrix 1999 720p"]


class _BrokenPool:
    instances: list["_BrokenPool"] = []

    def __init__(self, *args, **kwargs):
        self.shut_down = False
        _BrokenPool.instances.append(self)

    def submit(self, fn, *args):
        future = concurrent.futures.Future()
        future.set_exception(BrokenProcessPool("worker died"))
        return future

    def shutdown(self, wait=True, cancel_futures=False):
        self.shut_down = True


class _UnpicklablePool(_BrokenPool):
    def submit(self, fn, *args):
        raise TypeError("cannot pickle request")


@pytest.mark.asyncio
async def test_broken_worker_becomes_batch_failure(mocker, matrix, make_raw):
    _BrokenPool.instances.clear()
    mocker.patch.object(batch_processor, "ProcessPoolExecutor", _BrokenPool)
    request = BatchRequest(results=(make_raw(),), expected=matrix)

    result = await run_batch(request, ExecutionMode.PROCESS)

    assert isinstance(result, BatchFailure)
    assert result.context == {"stage": "worker", "input_size": 1}
    assert "worker died" in result.message
    assert _BrokenPool.instances[0].shut_down is True


@pytest.mark.asyncio
async def test_dispatch_error_becomes_batch_failure(mocker, matrix, make_raw):
    mocker.patch.object(batch_processor, "ProcessPoolExecutor", _UnpicklablePool)
    request = BatchRequest(results=(make_raw(),), expected=matrix)

    result = await run_batch(request)

    assert isinstance(result, BatchFailure)
    assert "cannot pickle request" in result.message


class _HangingPool(_BrokenPool):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.terminated = False

    def submit(self, fn, *args):
        return concurrent.futures.Future()

    def terminate_workers(self):
        self.terminated = True


@pytest.mark.asyncio
async def test_cancelled_batch_terminates_worker(mocker, matrix, make_raw):
    _BrokenPool.instances.clear()
    mocker.patch.object(batch_processor, "ProcessPoolExecutor", _HangingPool)
    request = BatchRequest(results=(make_raw(),), expected=matrix)

    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(run_batch(request, ExecutionMode.PROCESS), timeout=0.05)

    pool = _BrokenPool.instances[0]
    assert pool.terminated is True
    assert pool.shut_down is True


def test_terminate_workers_falls_back_to_worker_processes():
    process = Mock()
    pool = Mock(spec=["_processes"])
    pool._processes = {1234: process}

    batch_processor._terminate_workers(pool)

    process.terminate.assert_called_once_with()


def test_candidates_or_empty(matrix, caplog):
    failure = BatchFailure("boom", {"stage": "worker", "input_size": 3})

    with caplog.at_level(logging.WARNING):
        assert candidates_or_empty(failure) == []
    assert "boom" in caplog.text

    success = BatchSuccess(candidates=[])
    assert candidates_or_empty(success) is success.candidates


def test_raw_results_pass_through_unchanged(matrix):
    raw = RawResult(title="The Matrix 1999 1080p", info_hash="ABC", seeders=4)

    result = process_batch(BatchRequest(results=[raw], expected=matrix))

    assert result.candidates[0].raw is raw
    assert result.candidates[0].info_hash == "abc"
