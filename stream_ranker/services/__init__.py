from .batch_processor import (
    BatchFailure,
    BatchRequest,
    BatchSuccess,
    ExecutionMode,
    process_batch,
    run_batch,
)
from .indexer_client import IndexerClient, IndexerError
from .relevance import is_relevant, validate_torrent_title
from .search_logic import build_search_attempts, find_streams
from .title_normalizer import normalize
from .torrent_data import (
    CandidateStream,
    ExpectedMetadata,
    LookupStrategy,
    MediaKind,
    RawResult,
)
from .trackers import TrackerListCache

__all__ = [
    "BatchFailure",
    "BatchRequest",
    "BatchSuccess",
    "CandidateStream",
    "ExecutionMode",
    "ExpectedMetadata",
    "IndexerClient",
    "IndexerError",
    "LookupStrategy",
    "MediaKind",
    "RawResult",
    "TrackerListCache",
    "build_search_attempts",
    "find_streams",
    "is_relevant",
    "normalize",
    "process_batch",
    "run_batch",
    "validate_torrent_title",
]
