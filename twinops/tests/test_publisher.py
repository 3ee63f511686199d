from __future__ import annotations

from pathlib import Path

import pytest

from twinops.core.errors import PublishError
from twinops.core.publisher import PublishTarget, publish_frontend

BUCKET = "twin-test-frontend"
WEBSITE_ORIGIN = f"{BUCKET}.s3-website-us-east-1.amazonaws.com"


def _target(**overrides) -> PublishTarget:
    values = {
        "bucket": BUCKET,
        "environment": "test",
        "region": "us-east-1",
        "api_url": "https://api.test.example/",
        "cdn_url": None,
    }
    values.update(overrides)
    return PublishTarget(**values)


def _publish(runner, clients, project_root: Path, target: PublishTarget):
    frontend = project_root / "frontend"
    return publish_frontend(runner, clients, frontend, frontend / "out", target)


def test_build_injects_api_url_and_environment(runner, clients, fake_s3, project_root) -> None:
    fake_s3.add_bucket(BUCKET, {"old.html": b"old"})

    result = _publish(runner, clients, project_root, _target())

    assert runner.joined() == ["npm ci", "npm run build"]
    assert runner.cwds == [project_root / "frontend", project_root / "frontend"]
    assert runner.envs[1] == {
        "NEXT_PUBLIC_API_URL": "https://api.test.example/",
        "NEXT_PUBLIC_ENVIRONMENT": "test",
    }
    assert sorted(fake_s3.buckets[BUCKET]) == ["index.html"]
    assert result.sync.deleted == 1
    assert result.distribution_id is None
    assert result.warnings == []


def test_no_cdn_url_skips_invalidation(runner, clients, fake_s3, fake_cloudfront, project_root):
    fake_s3.add_bucket(BUCKET)
    fake_cloudfront.add_distribution("EMATCH", WEBSITE_ORIGIN)

    _publish(runner, clients, project_root, _target(cdn_url=None))

    assert fake_cloudfront.invalidations == []


def test_matching_distribution_is_invalidated(
    runner, clients, fake_s3, fake_cloudfront, project_root
) -> None:
    fake_s3.add_bucket(BUCKET)
    fake_cloudfront.add_distribution("EMATCH", WEBSITE_ORIGIN)

    result = _publish(runner, clients, project_root, _target(cdn_url="https://d111.cloudfront.net"))

    assert result.distribution_id == "EMATCH"
    assert result.invalidation_id == "I1"
    assert result.warnings == []


def test_unmatched_distribution_is_a_warning(runner, clients, fake_s3, project_root) -> None:
    fake_s3.add_bucket(BUCKET)

    result = _publish(runner, clients, project_root, _target(cdn_url="https://d111.cloudfront.net"))

    assert result.distribution_id is None
    assert len(result.warnings) == 1
    assert "no CloudFront distribution" in result.warnings[0]


def test_invalidation_failure_is_a_warning(
    runner, clients, fake_s3, fake_cloudfront, project_root
) -> None:
    fake_s3.add_bucket(BUCKET)
    fake_cloudfront.add_distribution("EMATCH", WEBSITE_ORIGIN)
    fake_cloudfront.fail_invalidation = True

    result = _publish(runner, clients, project_root, _target(cdn_url="https://d111.cloudfront.net"))

    assert result.distribution_id == "EMATCH"
    assert result.invalidation_id is None
    assert "cache invalidation failed" in result.warnings[0]


@pytest.mark.parametrize("failing", [("npm", "ci"), ("npm", "run", "build")])
def test_install_or_build_failure_is_fatal(runner, clients, fake_s3, project_root, failing) -> None:
    fake_s3.add_bucket(BUCKET)
    runner.script(*failing, returncode=1)

    with pytest.raises(PublishError, match="frontend build failed"):
        _publish(runner, clients, project_root, _target())

    assert fake_s3.uploads == []


def test_sync_failure_is_fatal(runner, clients, project_root) -> None:
    with pytest.raises(PublishError, match="sync to s3://"):
        _publish(runner, clients, project_root, _target(bucket="missing-bucket"))


def test_missing_build_output_is_fatal(runner, clients, fake_s3, project_root) -> None:
    fake_s3.add_bucket(BUCKET)
    for path in sorted((project_root / "frontend" / "out").iterdir()):
        path.unlink()
    (project_root / "frontend" / "out").rmdir()

    with pytest.raises(PublishError, match="build output not found"):
        _publish(runner, clients, project_root, _target())


def test_dry_run_makes_no_cloud_calls(dry_runner, clients, fake_s3, project_root) -> None:
    result = _publish(dry_runner, clients, project_root, _target(cdn_url="https://d1.net"))

    assert result.sync is None
    assert fake_s3.uploads == []
    assert any("[dry-run] mirror" in message for message in dry_runner.messages)
