"""Deploy and destroy pipelines.

Each stage returns a StageResult; the first Failed result stops the run.
Components receive explicit paths, so the process working directory is
never changed and needs no restoring on any exit path.
"""

from __future__ import annotations

from typing import Callable, Sequence

from botocore.exceptions import BotoCoreError, ClientError

from twinops.core import logging, storage
from twinops.core.aws import AWSClients
from twinops.core.builder import build_lambda_archive, ensure_placeholder_archive
from twinops.core.context import ACTION_DEPLOY, ACTION_DESTROY, RunContext
from twinops.core.errors import DeployError, ProvisioningError, StorageError
from twinops.core.models import OutputSet, RunSummary, StageResult, is_present
from twinops.core.publisher import PublishTarget, publish_frontend
from twinops.core.runner import CommandRunner
from twinops.core.state_backend import StateBackendConfig, resolve_state_backend
from twinops.core.terraform import ProvisioningDriver

DEPLOY_OUTPUTS = ("frontend_bucket", "api_url", "cdn_url")
DESTROY_BUCKET_OUTPUTS = ("frontend_bucket", "memory_bucket")

SUMMARY_LABELS = (
    ("cdn_url", "CloudFront URL"),
    ("api_url", "API Gateway"),
    ("frontend_bucket", "Frontend Bucket"),
)

Stage = tuple[str, Callable[[], StageResult]]


def run_stages(summary: RunSummary, stages: Sequence[Stage]) -> RunSummary:
    for index, (name, action) in enumerate(stages, start=1):
        logging.step(name, index, len(stages))
        try:
            result = action()
        except DeployError as exc:
            result = StageResult.failure(name, str(exc))
        summary.record(result)
        if result.failed:
            logging.error(f"{name} failed: {result.error}")
            break
    return summary


class _Pipeline:
    action = ""

    def __init__(
        self,
        context: RunContext,
        runner: CommandRunner,
        clients: AWSClients | None = None,
    ) -> None:
        self.context = context
        self.runner = runner
        self.clients = clients or AWSClients.from_context(context)
        self.layout = context.layout
        self.backend: StateBackendConfig | None = None
        self.outputs = OutputSet()
        self.driver = ProvisioningDriver(
            runner,
            self.layout.terraform_dir,
            project_name=context.project_name,
            environment=context.environment.value,
            use_prod_var_file=context.is_prod,
        )

    def stages(self) -> list[Stage]:
        raise NotImplementedError

    def run(self) -> RunSummary:
        summary = RunSummary(self.action, self.context.environment, self.context.project_name)
        run_stages(summary, self.stages())
        return summary

    def _output_names(self, logical_names: Sequence[str]) -> dict[str, str]:
        return {logical: self.layout.output_name(logical) for logical in logical_names}

    def _read_outputs(
        self, logical_names: Sequence[str], *, pre_destroy: bool = False
    ) -> OutputSet:
        names = self._output_names(logical_names)
        reader = self.driver.read_pre_destroy_outputs if pre_destroy else self.driver.read_outputs
        raw = reader(names.values())
        return OutputSet({logical: raw.get(name) for logical, name in names.items()})

    def configure_backend(self) -> StageResult:
        self.backend = resolve_state_backend(self.context)
        self.driver.init(self.backend)
        return StageResult.success(
            "backend",
            {"state_bucket": self.backend.bucket, "state_key": self.backend.key},
        )


class DeployPipeline(_Pipeline):
    action = ACTION_DEPLOY

    def stages(self) -> list[Stage]:
        return [
            ("build", self.build),
            ("backend", self.configure_backend),
            ("workspace", self.select_workspace),
            ("plan", self.plan),
            ("apply", self.apply),
            ("outputs", self.read_outputs),
            ("publish", self.publish),
        ]

    def build(self) -> StageResult:
        archive = build_lambda_archive(self.runner, self.layout)
        self.runner.emit(f"Lambda package: {archive.path} ({archive.size_label})")
        return StageResult.success(
            "build",
            {"archive": str(archive.path), "archive_size": str(archive.size_bytes)},
        )

    def select_workspace(self) -> StageResult:
        created = self.driver.select_workspace(create_missing=True)
        return StageResult.success(
            "workspace",
            {"workspace": self.context.environment.value, "created": str(created).lower()},
        )

    def plan(self) -> StageResult:
        has_changes = self.driver.plan()
        if not has_changes:
            self.runner.emit("No changes. Infrastructure matches the configuration.")
        return StageResult.success("plan", {"changes": str(has_changes).lower()})

    def apply(self) -> StageResult:
        self.driver.apply()
        return StageResult.success("apply")

    def read_outputs(self) -> StageResult:
        self.outputs = self._read_outputs(DEPLOY_OUTPUTS)
        return StageResult.success("outputs", dict(self.outputs))

    def publish(self) -> StageResult:
        bucket = self.outputs.get("frontend_bucket")
        if not is_present(bucket):
            self.runner.emit("No frontend bucket output; skipping frontend publish")
            return StageResult.skipped("publish", "frontend bucket not provisioned")

        target = PublishTarget(
            bucket=bucket,
            environment=self.context.environment.value,
            region=self.context.region,
            api_url=self.outputs.get("api_url"),
            cdn_url=self.outputs.get("cdn_url"),
        )
        result = publish_frontend(
            self.runner,
            self.clients,
            self.layout.frontend_dir,
            self.layout.frontend_output_dir,
            target,
        )
        published = {"bucket": bucket}
        if result.distribution_id:
            published["distribution_id"] = result.distribution_id
        return StageResult.success("publish", published, warnings=result.warnings)

    def run(self) -> RunSummary:
        summary = super().run()
        if summary.ok:
            summary.outputs = dict(self.outputs)
        return summary


class DestroyPipeline(_Pipeline):
    action = ACTION_DESTROY

    def stages(self) -> list[Stage]:
        return [
            ("backend", self.configure_backend),
            ("workspace", self.select_workspace),
            ("outputs", self.read_outputs),
            ("purge", self.purge_buckets),
            ("placeholder", self.ensure_archive),
            ("destroy", self.destroy),
        ]

    def select_workspace(self) -> StageResult:
        self.driver.select_workspace(create_missing=False)
        return StageResult.success("workspace", {"workspace": self.context.environment.value})

    def read_outputs(self) -> StageResult:
        self.outputs = self._read_outputs(DESTROY_BUCKET_OUTPUTS, pre_destroy=True)
        return StageResult.success("outputs", dict(self.outputs))

    def purge_buckets(self) -> StageResult:
        buckets = [self.outputs[name] for name in DESTROY_BUCKET_OUTPUTS if name in self.outputs]
        purged: dict[str, str] = {}
        if buckets and self.runner.dry_run:
            for bucket in buckets:
                self.runner.emit(f"[dry-run] empty s3://{bucket}")
        elif buckets:
            for bucket in buckets:
                try:
                    s3 = self.clients.s3()
                    if not storage.bucket_exists(s3, bucket):
                        self.runner.emit(f"Bucket s3://{bucket} not found; nothing to empty")
                        continue
                    self.runner.emit(f"Emptying s3://{bucket}")
                    purged[bucket] = str(storage.purge_bucket(s3, bucket))
                except (ClientError, BotoCoreError, StorageError) as exc:
                    raise ProvisioningError(f"failed to empty s3://{bucket}: {exc}") from exc
        self.driver.mark_purged()
        return StageResult.success("purge", purged)

    def ensure_archive(self) -> StageResult:
        created = ensure_placeholder_archive(self.runner, self.layout.archive_path)
        return StageResult.success("placeholder", {"created": str(created).lower()})

    def destroy(self) -> StageResult:
        self.driver.destroy()
        return StageResult.success("destroy")


def execute_deploy(
    context: RunContext,
    runner: CommandRunner,
    clients: AWSClients | None = None,
) -> RunSummary:
    return DeployPipeline(context, runner, clients).run()


def execute_destroy(
    context: RunContext,
    runner: CommandRunner,
    clients: AWSClients | None = None,
) -> RunSummary:
    return DestroyPipeline(context, runner, clients).run()


def print_summary(summary: RunSummary) -> None:
    target = f"{summary.project_name} ({summary.environment.value})"
    if not summary.ok:
        failed = summary.failed_stage
        stage = failed.name if failed else "unknown"
        logging.error(f"{summary.action} failed for {target} at stage '{stage}'")
        return

    logging.success(f"{summary.action.capitalize()} complete for {target}")
    for warning in summary.warnings:
        logging.warning(warning)
    for key, label in SUMMARY_LABELS:
        value = summary.outputs.get(key)
        if value:
            logging.field(label, value)
