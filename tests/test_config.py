import pytest

from appraisers.config import (
    SiteConfig,
    load_env_file,
    load_site_config,
    normalize_route,
)


def test_normalize_route_directory_and_file_paths():
    assert normalize_route("location/denver") == "/location/denver/"
    assert normalize_route("/location/denver/index.html") == "/location/denver/"
    assert normalize_route("index.html") == "/"
    assert normalize_route("") == "/"
    assert normalize_route("/sitemap.xml") == "/sitemap.xml"


def test_absolute_url_strips_trailing_slash_from_base():
    config = SiteConfig(base_url="https://directory.example.com///")
    assert config.base_url == "https://directory.example.com"
    assert config.absolute_url("/appraiser/smith-denver") == "https://directory.example.com/appraiser/smith-denver/"


def test_empty_base_url_is_rejected():
    with pytest.raises(ValueError):
        SiteConfig(base_url="  ")


def test_rewrite_image_url(config):
    assert config.rewrite_image_url("https://ik.imagekit.io/appraisily/a/b.jpg") == "https://img.example.com/a/b.jpg"
    assert config.rewrite_image_url("https://other.example.com/b.jpg") == "https://other.example.com/b.jpg"


def test_with_overrides_ignores_unset_values(config):
    assert config.with_overrides(base_url=None, container_name="") is config
    changed = config.with_overrides(container_name="web-2")
    assert changed.container_name == "web-2"
    assert config.container_name == "directory-web"


def test_load_env_file_parses_quotes_and_comments(tmp_path):
    env = tmp_path / ".env"
    env.write_text('# comment\nSITE_BASE_URL="https://staging.example.com"\n\nCONTAINER_NAME=web\nnot-a-pair\n')
    assert load_env_file(env) == {"SITE_BASE_URL": "https://staging.example.com", "CONTAINER_NAME": "web"}
    assert load_env_file(tmp_path / "missing.env") == {}


def test_load_site_config_yaml_then_env(tmp_path):
    cfg_file = tmp_path / "site.yaml"
    cfg_file.write_text(
        "base_url: https://from-yaml.example.com/\n"
        "legacy_markers: [old.example.com]\n"
        "cache_ttl_hours: 2\n"
        "unknown_key: 1\n"
    )
    config = load_site_config(cfg_file, env={})
    assert config.base_url == "https://from-yaml.example.com"
    assert config.legacy_markers == ["old.example.com"]
    assert config.cache_ttl_seconds == 7200

    overridden = load_site_config(cfg_file, env={"SITE_BASE_URL": "https://from-env.example.com", "RELEASE_ROOT": "/srv/rel"})
    assert overridden.base_url == "https://from-env.example.com"
    assert overridden.release_root == "/srv/rel"


def test_load_site_config_rejects_non_mapping(tmp_path):
    cfg_file = tmp_path / "site.yaml"
    cfg_file.write_text("- just\n- a list\n")
    with pytest.raises(ValueError):
        load_site_config(cfg_file, env={})


def test_missing_config_file_uses_defaults(tmp_path):
    config = load_site_config(tmp_path / "nope.yaml", env={})
    assert config == SiteConfig()


def test_repository_site_yaml_loads():
    config = load_site_config(env={})
    assert config.base_url.startswith("https://")
    assert "ik.imagekit.io" in config.legacy_markers
