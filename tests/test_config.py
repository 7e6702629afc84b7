import pytest

from stream_ranker import config as config_module
from stream_ranker.config import (
    DEFAULT_TRACKERS_URL,
    RankingConfig,
    RankingConfigError,
    SortKey,
    get_configuration,
    load_ranking_profile,
)


@pytest.fixture(autouse=True)
def _clear_profile_cache():
    config_module._profile_cache.clear()
    yield
    config_module._profile_cache.clear()


def test_get_configuration_happy_path(mocker):
    config_data = """
[indexer]
url=http://jackett.local:9117/
api_key=SECRET
timeout=12

[trackers]
ttl_hours=6

[ranking]
preferred_resolutions=2160p, 1080p
preferred_languages=english
min_seeders=5
max_size_mb=8000
primary_sort_key=score
reject_cam_releases=yes
"""
    mocker.patch("builtins.open", mocker.mock_open(read_data=config_data))
    mocker.patch("os.path.exists", return_value=True)

    service, ranking = get_configuration()

    assert service.indexer_url == "http://jackett.local:9117"
    assert service.indexer_api_key == "SECRET"
    assert service.indexer_timeout == 12
    assert service.trackers_url == DEFAULT_TRACKERS_URL
    assert service.trackers_ttl_seconds == 6 * 3600
    assert ranking.preferred_resolutions == ("2160p", "1080p")
    assert ranking.preferred_languages == ("english",)
    assert ranking.min_seeders == 5
    assert ranking.max_size_mb == 8000
    assert ranking.primary_sort_key is SortKey.SCORE
    assert ranking.reject_cam_releases is True


def test_get_configuration_without_ranking_section_uses_defaults(mocker):
    config_data = """
[indexer]
url=http://jackett.local:9117
api_key=SECRET
"""
    mocker.patch("builtins.open", mocker.mock_open(read_data=config_data))
    mocker.patch("os.path.exists", return_value=True)

    _, ranking = get_configuration()

    assert ranking == RankingConfig()


def test_get_configuration_missing_file(mocker):
    mocker.patch("os.path.exists", return_value=False)
    with pytest.raises(SystemExit):
        get_configuration()


def test_get_configuration_placeholder_api_key(mocker):
    config_data = """
[indexer]
url=http://jackett.local:9117
api_key=YOUR_JACKETT_API_KEY
"""
    mocker.patch("builtins.open", mocker.mock_open(read_data=config_data))
    mocker.patch("os.path.exists", return_value=True)
    with pytest.raises(SystemExit):
        get_configuration()


def test_get_configuration_non_numeric_threshold(mocker):
    config_data = """
[indexer]
url=http://jackett.local:9117
api_key=SECRET

[ranking]
min_seeders=plenty
"""
    mocker.patch("builtins.open", mocker.mock_open(read_data=config_data))
    mocker.patch("os.path.exists", return_value=True)
    with pytest.raises(RankingConfigError):
        get_configuration()


def test_get_configuration_loads_relative_profile(tmp_path):
    (tmp_path / "profile.yaml").write_text(
        "preferred_video_qualities: [remux, x265]\n"
        "preferred_audio_qualities: [atmos]\n"
        "maxResultCount: 3\n",
        encoding="utf-8",
    )
    config_path = tmp_path / "config.ini"
    config_path.write_text(
        "[indexer]\nurl=http://x\napi_key=k\n\n[ranking]\nprofile=profile.yaml\n",
        encoding="utf-8",
    )

    _, ranking = get_configuration(str(config_path))

    assert ranking.preferred_video_qualities == ("remux", "x265")
    assert ranking.preferred_audio_qualities == ("atmos",)
    assert ranking.max_result_count == 3


def test_from_dict_accepts_camel_case_and_comma_lists():
    cfg = RankingConfig.from_dict(
        {
            "minSeeders": 2,
            "preferredResolutions": "1080p, 720p",
            "preferredLanguages": ["english", " hindi "],
            "primarySortKey": "publishDate",
            "maxResultCount": 10,
        }
    )

    assert cfg.min_seeders == 2
    assert cfg.preferred_resolutions == ("1080p", "720p")
    assert cfg.preferred_languages == ("english", "hindi")
    assert cfg.primary_sort_key is SortKey.PUBLISH_DATE
    assert cfg.max_result_count == 10


def test_from_dict_ignores_unknown_keys(caplog):
    cfg = RankingConfig.from_dict({"favouriteColour": "blue"})

    assert cfg == RankingConfig()
    assert "favouriteColour" in caplog.text


@pytest.mark.parametrize(
    "payload",
    [
        {"min_seeders": -1},
        {"maxResultCount": -5},
        {"minSizeMB": 500, "maxSizeMB": 100},
        {"primarySortKey": "popularity"},
        {"preferredLanguages": 42},
        {"min_seeders": "ten"},
    ],
)
def test_from_dict_rejects_invalid_values(payload):
    with pytest.raises(RankingConfigError):
        RankingConfig.from_dict(payload)


def test_from_dict_rejects_non_mapping():
    with pytest.raises(RankingConfigError):
        RankingConfig.from_dict(["min_seeders", 1])  # type: ignore[arg-type]


def test_validate_catches_directly_constructed_bad_config():
    with pytest.raises(RankingConfigError):
        RankingConfig(max_result_count=-1).validate()


def test_with_overrides_returns_validated_copy():
    base = RankingConfig()
    updated = base.with_overrides(min_seeders=3)

    assert updated.min_seeders == 3
    assert base.min_seeders == 0
    with pytest.raises(RankingConfigError):
        base.with_overrides(min_size_mb=-1)


def test_load_ranking_profile_is_cached(tmp_path):
    profile = tmp_path / "profile.yaml"
    profile.write_text(
        "preferred_video_qualities: [bluray]\npreferred_audio_qualities: [aac]\n",
        encoding="utf-8",
    )

    first = load_ranking_profile(profile)
    profile.unlink()
    second = load_ranking_profile(profile)

    assert first is second
    assert first.preferred_video_qualities == ("bluray",)


def test_load_ranking_profile_missing_keys(tmp_path):
    profile = tmp_path / "profile.yaml"
    profile.write_text("preferred_video_qualities: [bluray]\n", encoding="utf-8")

    with pytest.raises(RankingConfigError, match="preferred_audio_qualities"):
        load_ranking_profile(profile)


def test_load_ranking_profile_invalid_yaml(tmp_path):
    profile = tmp_path / "profile.yaml"
    profile.write_text("preferred_video_qualities: [bluray\n", encoding="utf-8")

    with pytest.raises(RankingConfigError):
        load_ranking_profile(profile)


def test_load_ranking_profile_not_a_mapping(tmp_path):
    profile = tmp_path / "profile.yaml"
    profile.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(RankingConfigError):
        load_ranking_profile(profile)


def test_load_ranking_profile_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_ranking_profile(tmp_path / "nope.yaml")
