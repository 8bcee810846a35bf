import json

import pytest

import build
import publish
from conftest import FakeSession

BASE = "https://staging.example.com"


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for key in ("SITE_BASE_URL", "RELEASE_ROOT", "CONTAINER_NAME", "DEFAULT_IMAGE_URL",
                "IMAGE_HOST_BASE", "IMAGE_GENERATION_SERVICE_URL"):
        monkeypatch.delenv(key, raising=False)


def _build_args(raw_data_dir, tmp_path, *extra):
    return [
        "--data-dir", str(raw_data_dir),
        "--out", str(tmp_path / "dist"),
        "--cache-dir", str(tmp_path / "cache"),
        "--base-url", BASE,
        *extra,
    ]


def _run(main, argv, capsys):
    main(argv)
    return json.loads(capsys.readouterr().out)


def test_build_skip_images_end_to_end(raw_data_dir, tmp_path, capsys):
    summary = _run(build.main, _build_args(raw_data_dir, tmp_path, "--skip-images"), capsys)

    assert summary["action"] == "built"
    assert summary["files_processed"] == 3
    assert summary["skipped_files"] == ["broken.json"]
    assert summary["appraisers"] == 4
    assert summary["pages"] == 7
    assert summary["sitemap_urls"] == 8
    assert summary["images"]["tiers"] == {"default": 3, "unvalidated": 1}
    assert summary["hubs"] == {"location": 2, "appraiser": 4}

    out = tmp_path / "dist"
    assert json.loads((out / "manifest.json").read_text())["appraisers"] == 4
    assert f"<loc>{BASE}/</loc>" in (out / "sitemap.xml").read_text()
    assert "ik.imagekit.io" not in (out / "appraiser" / "denver-art-appraisal-group-denver" / "index.html").read_text()


def test_build_writes_standardized_files(raw_data_dir, tmp_path, capsys):
    std = tmp_path / "standardized"
    _run(build.main, _build_args(raw_data_dir, tmp_path, "--skip-images", "--standardized-dir", str(std)), capsys)
    denver = json.loads((std / "denver.json").read_text())
    assert len(denver["appraisers"]) == 4
    assert denver["appraisers"][1]["contact"] == {"phone": "", "email": "", "website": ""}


def test_build_with_network_down_falls_back_to_default(raw_data_dir, tmp_path, config):
    args = build.parse_args(_build_args(raw_data_dir, tmp_path, "--workers", "4"))
    summary = build.build_site(args, config, session=FakeSession(fail_all=True))
    assert summary["images"]["tiers"] == {"default": 4}
    page = (tmp_path / "dist" / "appraiser" / "rocky-mountain-antiques-denver" / "index.html").read_text()
    assert f'src="{config.default_image}"' in page


def test_build_missing_data_dir_is_fatal(tmp_path, capsys):
    with pytest.raises(SystemExit) as exc:
        build.main(["--data-dir", str(tmp_path / "nope"), "--out", str(tmp_path / "dist")])
    assert exc.value.code == 1
    assert "FATAL [required-directories]" in capsys.readouterr().err


def test_publish_then_status_then_rollback(raw_data_dir, tmp_path, capsys):
    _run(build.main, _build_args(raw_data_dir, tmp_path, "--skip-images"), capsys)
    releases = tmp_path / "releases"
    common = ["--public-dir", str(tmp_path / "dist"), "--release-root", str(releases), "--base-url", BASE]

    dry = _run(publish.main, common + ["--dry-run"], capsys)
    assert dry["action"] == "dry-run"
    assert not releases.exists()

    first = _run(publish.main, common + ["--no-restart"], capsys)
    assert first["action"] == "published"
    assert first["container_restarted"] is False
    assert first["sitemap_urls"] == 8
    assert (releases / "current" / "index.html").exists()

    status = _run(publish.main, ["--release-root", str(releases), "--status"], capsys)
    assert status["current"] == first["timestamp"]
    assert status["previous"] is None

    with pytest.raises(SystemExit) as exc:
        publish.main(["--release-root", str(releases), "--rollback"])
    assert exc.value.code == 1
    assert "FATAL [rollback]" in capsys.readouterr().err


def test_publish_legacy_reference_is_fatal(raw_data_dir, tmp_path, capsys):
    _run(build.main, _build_args(raw_data_dir, tmp_path, "--skip-images"), capsys)
    (tmp_path / "dist" / "legacy.js").write_text("const img = 'https://ik.imagekit.io/appraisily/a.jpg';")
    releases = tmp_path / "releases"
    with pytest.raises(SystemExit) as exc:
        publish.main(["--public-dir", str(tmp_path / "dist"), "--release-root", str(releases), "--no-restart"])
    assert exc.value.code == 1
    assert "FATAL [legacy-references]" in capsys.readouterr().err
    assert not (releases / "current").exists()


def test_publish_missing_public_dir_is_fatal(tmp_path, capsys):
    with pytest.raises(SystemExit) as exc:
        publish.main(["--public-dir", str(tmp_path / "nope"), "--release-root", str(tmp_path / "releases")])
    assert exc.value.code == 1
    assert "FATAL [required-directories]" in capsys.readouterr().err
    assert not (tmp_path / "releases").exists()


def test_publish_restart_flags():
    assert publish.parse_args([]).restart is True
    assert publish.parse_args(["--no-restart"]).restart is False
    with pytest.raises(SystemExit):
        publish.parse_args(["--no-restart", "--restart-container"])
