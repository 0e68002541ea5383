from __future__ import annotations

from imagist.config import Settings


def test_defaults() -> None:
    s = Settings()
    assert s.allowed_hosts == []
    assert s.accepted_types == ["image/jpeg", "image/png", "image/webp", "image/gif"]
    assert s.passthrough_types == []
    assert s.output_formats == ["jpeg", "png", "webp"]
    assert s.default_quality == 80
    assert s.trim_threshold == 10
    assert s.fetch_ttfb_timeout_s == 10.0
    assert s.max_redirects == 5
    assert s.max_dimension == 8192
    assert s.max_output_pixels == 50_000_000


def test_csv_env_lists(monkeypatch) -> None:
    monkeypatch.setenv("IMAGIST_ALLOWED_HOSTS", "cdn.example.com, img.example.com,")
    monkeypatch.setenv("IMAGIST_ACCEPTED_TYPES", "IMAGE/PNG,image/jpeg")
    s = Settings()
    assert s.allowed_hosts == ["cdn.example.com", "img.example.com"]
    assert s.accepted_types == ["image/png", "image/jpeg"]


def test_json_env_lists(monkeypatch) -> None:
    monkeypatch.setenv("IMAGIST_OUTPUT_FORMATS", '["jpeg", "tiff"]')
    assert Settings().output_formats == ["jpeg", "tiff"]


def test_allowlist_case_is_kept(monkeypatch) -> None:
    monkeypatch.setenv("IMAGIST_ALLOWED_HOSTS", "CDN.example.com")
    assert Settings().allowed_hosts == ["CDN.example.com"]


def test_base_host_joins_non_empty_allowlist() -> None:
    s = Settings(allowed_hosts=["cdn.example.com"], base_host="media.example.com:8080")
    assert s.effective_allowlist() == ["cdn.example.com", "media.example.com"]
    # an empty allow-list stays "allow everything"
    assert Settings(base_host="media.example.com").effective_allowlist() == []


def test_parser_policy_mirrors_settings() -> None:
    s = Settings(
        default_quality=70,
        trim_threshold=20,
        cover_only_positions=["entropy"],
        output_formats="jpeg,png",
        max_dimension=1024,
    )
    policy = s.parser_policy()
    assert policy.max_dimension == 1024
    assert policy.default_quality == 70
    assert policy.trim_threshold == 20
    assert policy.cover_only_positions == frozenset({"entropy"})
    assert policy.output_formats == frozenset({"jpeg", "png"})
