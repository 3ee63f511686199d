# Where: twinops/core/publisher.py
# What: Frontend build, bucket mirror and CDN invalidation.
# Why: Install/build/sync failures abort the run; CDN problems only warn.
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from botocore.exceptions import BotoCoreError, ClientError

from twinops.core import cdn, storage
from twinops.core.aws import AWSClients
from twinops.core.errors import PublishError, StorageError
from twinops.core.runner import CommandRunner, RunnerError
from twinops.core.storage import SyncResult

NPM_BIN = "npm"
API_URL_ENV = "NEXT_PUBLIC_API_URL"
ENVIRONMENT_ENV = "NEXT_PUBLIC_ENVIRONMENT"


@dataclass(frozen=True)
class PublishTarget:
    bucket: str
    environment: str
    region: str
    api_url: str | None = None
    cdn_url: str | None = None


@dataclass
class PublishResult:
    sync: SyncResult | None = None
    distribution_id: str | None = None
    invalidation_id: str | None = None
    warnings: list[str] = field(default_factory=list)


def build_frontend(
    runner: CommandRunner,
    frontend_dir: Path,
    *,
    api_url: str | None,
    environment: str,
) -> None:
    if not runner.dry_run and not frontend_dir.is_dir():
        raise PublishError(f"frontend directory not found: {frontend_dir}")
    try:
        npm = runner.require_command(NPM_BIN)
        runner.run([npm, "ci"], cwd=frontend_dir, stream_output=True)
        runner.run(
            [npm, "run", "build"],
            cwd=frontend_dir,
            env={API_URL_ENV: api_url or "", ENVIRONMENT_ENV: environment},
            stream_output=True,
        )
    except RunnerError as exc:
        raise PublishError(f"frontend build failed: {exc}") from exc


def _invalidate(clients: AWSClients, target: PublishTarget, result: PublishResult, emit) -> None:
    try:
        client = clients.cloudfront()
        distribution_id = cdn.find_distribution_id(client, target.bucket, target.region)
    except (ClientError, BotoCoreError) as exc:
        result.warnings.append(f"could not list CloudFront distributions: {exc}")
        return
    if distribution_id is None:
        result.warnings.append(
            f"no CloudFront distribution found with origin for bucket {target.bucket}; "
            "skipping cache invalidation"
        )
        return

    result.distribution_id = distribution_id
    try:
        result.invalidation_id = cdn.invalidate_all(client, distribution_id)
    except (ClientError, BotoCoreError) as exc:
        result.warnings.append(f"cache invalidation failed for {distribution_id}: {exc}")
        return
    emit(f"Invalidated {cdn.INVALIDATE_ALL_PATH} on distribution {distribution_id}")


def publish_frontend(
    runner: CommandRunner,
    clients: AWSClients,
    frontend_dir: Path,
    build_dir: Path,
    target: PublishTarget,
) -> PublishResult:
    result = PublishResult()

    runner.emit(f"Building frontend for {target.environment} (API: {target.api_url or '-'})")
    build_frontend(runner, frontend_dir, api_url=target.api_url, environment=target.environment)

    if runner.dry_run:
        runner.emit(f"[dry-run] mirror {build_dir} -> s3://{target.bucket} (delete stale objects)")
        if target.cdn_url:
            runner.emit(f"[dry-run] invalidate {cdn.INVALIDATE_ALL_PATH} for {target.cdn_url}")
        return result

    if not build_dir.is_dir():
        raise PublishError(f"frontend build output not found: {build_dir}")

    runner.emit(f"Uploading {build_dir} to s3://{target.bucket}...")
    try:
        result.sync = storage.mirror_directory(clients.s3(), build_dir, target.bucket, delete=True)
    except (ClientError, BotoCoreError, StorageError) as exc:
        raise PublishError(f"sync to s3://{target.bucket} failed: {exc}") from exc
    runner.emit(
        f"Synced s3://{target.bucket}: {result.sync.uploaded} uploaded, "
        f"{result.sync.unchanged} unchanged, {result.sync.deleted} deleted"
    )

    if target.cdn_url:
        _invalidate(clients, target, result, runner.emit)
    return result
