from __future__ import annotations

import hashlib
from pathlib import Path

import pytest
from botocore.exceptions import ClientError

from twinops.core.context import load_run_context
from twinops.core.runner import CompletedCommand, RunnerError

BASE_ENV = {
    "AWS_ACCOUNT_ID": "123456789012",
    "DEFAULT_AWS_REGION": "us-east-1",
    "TF_STATE_BUCKET": "twin-tf-state",
    "TF_STATE_TABLE": "twin-tf-locks",
}


class FakeRunner:
    """Records commands and answers them from scripted (prefix -> result) rules."""

    def __init__(self, events: list, *, dry_run: bool = False) -> None:
        self.dry_run = dry_run
        self.events = events
        self.commands: list[list[str]] = []
        self.cwds: list[Path | None] = []
        self.envs: list[dict[str, str] | None] = []
        self.messages: list[str] = []
        self._rules: list[tuple[tuple[str, ...], list[CompletedCommand]]] = []

    def script(self, *prefix: str, returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        result = CompletedCommand(prefix, returncode, stdout, stderr)
        for rule_prefix, queue in self._rules:
            if rule_prefix == prefix:
                queue.append(result)
                return
        self._rules.append((prefix, [result]))

    def emit(self, message: str) -> None:
        self.messages.append(message)

    def require_command(self, command: str) -> str:
        return command

    def run(
        self,
        cmd,
        *,
        cwd=None,
        env=None,
        capture_output: bool = False,
        check: bool = True,
        stream_output: bool = False,
    ) -> CompletedCommand:
        del capture_output, stream_output
        command = [str(token) for token in cmd]
        self.commands.append(command)
        self.cwds.append(cwd)
        self.envs.append(dict(env) if env else None)
        self.events.append(("cmd", " ".join(command)))
        if self.dry_run:
            return CompletedCommand(tuple(command), 0, "", "")

        result = CompletedCommand(tuple(command), 0, "", "")
        for prefix, queue in self._rules:
            if tuple(command[: len(prefix)]) == prefix:
                scripted = queue.pop(0) if len(queue) > 1 else queue[0]
                result = CompletedCommand(
                    tuple(command), scripted.returncode, scripted.stdout, scripted.stderr
                )
                break

        if check and result.returncode != 0:
            raise RunnerError(
                f"command failed with exit code {result.returncode}: {' '.join(command)}",
                cmd=command,
                returncode=result.returncode,
            )
        return result

    def joined(self) -> list[str]:
        return [" ".join(command) for command in self.commands]


def _client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class _Paginator:
    def __init__(self, pages) -> None:
        self._pages = pages

    def paginate(self, **kwargs):
        return self._pages(**kwargs)


class FakeS3:
    def __init__(self, events: list, page_size: int = 1000) -> None:
        self.events = events
        self.page_size = page_size
        self.buckets: dict[str, dict[str, bytes]] = {}
        self.content_types: dict[tuple[str, str], str] = {}
        self.delete_calls: list[list[str]] = []
        self.uploads: list[tuple[str, str]] = []
        self.forbidden: set[str] = set()

    def add_bucket(self, name: str, objects: dict[str, bytes] | None = None) -> None:
        self.buckets[name] = dict(objects or {})

    def head_bucket(self, Bucket: str):
        if Bucket in self.forbidden:
            raise _client_error("403", "HeadBucket")
        if Bucket not in self.buckets:
            raise _client_error("404", "HeadBucket")
        return {}

    def get_paginator(self, name: str):
        assert name == "list_objects_v2"

        def pages(Bucket: str):
            self.events.append(("s3", "list", Bucket))
            if Bucket not in self.buckets:
                raise _client_error("NoSuchBucket", "ListObjectsV2")
            keys = sorted(self.buckets[Bucket])
            if not keys:
                yield {}
                return
            for start in range(0, len(keys), self.page_size):
                chunk = keys[start : start + self.page_size]
                yield {
                    "Contents": [
                        {
                            "Key": key,
                            "Size": len(self.buckets[Bucket][key]),
                            "ETag": f'"{hashlib.md5(self.buckets[Bucket][key]).hexdigest()}"',
                        }
                        for key in chunk
                    ]
                }

        return _Paginator(pages)

    def delete_objects(self, Bucket: str, Delete: dict):
        keys = [item["Key"] for item in Delete["Objects"]]
        self.delete_calls.append(keys)
        self.events.append(("s3", "delete", Bucket))
        for key in keys:
            self.buckets[Bucket].pop(key, None)
        return {}

    def upload_file(self, Filename: str, Bucket: str, Key: str, ExtraArgs=None):
        self.events.append(("s3", "upload", Bucket))
        self.uploads.append((Bucket, Key))
        self.buckets[Bucket][Key] = Path(Filename).read_bytes()
        if ExtraArgs and "ContentType" in ExtraArgs:
            self.content_types[(Bucket, Key)] = ExtraArgs["ContentType"]


class FakeCloudFront:
    def __init__(self, events: list) -> None:
        self.events = events
        self.distributions: list[dict] = []
        self.invalidations: list[dict] = []
        self.fail_invalidation = False

    def add_distribution(self, distribution_id: str, *origin_domains: str) -> None:
        self.distributions.append(
            {
                "Id": distribution_id,
                "Origins": {
                    "Quantity": len(origin_domains),
                    "Items": [
                        {"Id": f"origin-{index}", "DomainName": domain}
                        for index, domain in enumerate(origin_domains)
                    ],
                },
            }
        )

    def get_paginator(self, name: str):
        assert name == "list_distributions"

        def pages():
            if not self.distributions:
                yield {"DistributionList": {"Quantity": 0}}
                return
            for distribution in self.distributions:
                yield {"DistributionList": {"Quantity": 1, "Items": [distribution]}}

        return _Paginator(pages)

    def create_invalidation(self, DistributionId: str, InvalidationBatch: dict):
        self.events.append(("cloudfront", "invalidate", DistributionId))
        if self.fail_invalidation:
            raise _client_error("TooManyInvalidationsInProgress", "CreateInvalidation")
        self.invalidations.append({"DistributionId": DistributionId, **InvalidationBatch})
        return {"Invalidation": {"Id": f"I{len(self.invalidations)}"}}


class FakeClients:
    def __init__(self, s3: FakeS3, cloudfront: FakeCloudFront) -> None:
        self._s3 = s3
        self._cloudfront = cloudfront

    def s3(self):
        return self._s3

    def cloudfront(self):
        return self._cloudfront


@pytest.fixture
def base_env() -> dict[str, str]:
    return dict(BASE_ENV)


@pytest.fixture
def events() -> list:
    return []


@pytest.fixture
def runner(events) -> FakeRunner:
    return FakeRunner(events)


@pytest.fixture
def dry_runner(events) -> FakeRunner:
    return FakeRunner(events, dry_run=True)


@pytest.fixture
def fake_s3(events) -> FakeS3:
    return FakeS3(events)


@pytest.fixture
def fake_cloudfront(events) -> FakeCloudFront:
    return FakeCloudFront(events)


@pytest.fixture
def clients(fake_s3, fake_cloudfront) -> FakeClients:
    return FakeClients(fake_s3, fake_cloudfront)


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    backend = tmp_path / "backend"
    backend.mkdir()
    (backend / "lambda_handler.py").write_text("def handler(event, context):\n    return {}\n")
    (backend / "server.py").write_text("APP = 'twin'\n")
    (backend / "data").mkdir()
    (backend / "data" / "facts.json").write_text('{"name": "twin"}\n')
    (tmp_path / "terraform").mkdir()
    out = tmp_path / "frontend" / "out"
    out.mkdir(parents=True)
    (out / "index.html").write_text("<html>twin</html>\n")
    return tmp_path


@pytest.fixture
def make_context(project_root: Path):
    def _make(action: str = "deploy", environment: str = "dev", **overrides):
        env = dict(BASE_ENV)
        env.update(overrides.pop("env", {}))
        return load_run_context(
            action,
            environment,
            project_root=overrides.pop("project_root", project_root),
            env=env,
            **overrides,
        )

    return _make
