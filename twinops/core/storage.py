"""S3 bucket operations: existence check, recursive purge and mirror sync."""

from __future__ import annotations

import hashlib
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator

from botocore.exceptions import ClientError

from twinops.core.errors import StorageError

# DeleteObjects accepts at most 1000 keys per request.
_DELETE_BATCH = 1000
_MISSING_BUCKET_CODES = {"404", "NoSuchBucket", "NotFound"}


@dataclass(frozen=True)
class RemoteObject:
    key: str
    size: int
    etag: str


@dataclass(frozen=True)
class SyncResult:
    uploaded: int
    unchanged: int
    deleted: int


def bucket_exists(s3, bucket: str) -> bool:
    try:
        s3.head_bucket(Bucket=bucket)
    except ClientError as exc:
        code = str(exc.response.get("Error", {}).get("Code", ""))
        if code in _MISSING_BUCKET_CODES:
            return False
        raise
    return True


def iter_objects(s3, bucket: str) -> Iterator[RemoteObject]:
    paginator = s3.get_paginator("list_objects_v2")
    for page in paginator.paginate(Bucket=bucket):
        for item in page.get("Contents", []) or []:
            yield RemoteObject(
                key=item["Key"],
                size=int(item.get("Size", 0)),
                etag=str(item.get("ETag", "")).strip('"'),
            )


def delete_keys(s3, bucket: str, keys: Iterable[str]) -> int:
    pending = list(keys)
    deleted = 0
    for start in range(0, len(pending), _DELETE_BATCH):
        batch = pending[start : start + _DELETE_BATCH]
        response = s3.delete_objects(
            Bucket=bucket,
            Delete={"Objects": [{"Key": key} for key in batch], "Quiet": True},
        )
        errors = response.get("Errors") or []
        if errors:
            first = errors[0]
            detail = f"{first.get('Key')}: {first.get('Code')} {first.get('Message', '')}".rstrip()
            raise StorageError(
                f"failed to delete {len(errors)} object(s) from s3://{bucket} (first: {detail})"
            )
        deleted += len(batch)
    return deleted


def purge_bucket(s3, bucket: str) -> int:
    """Delete every object in ``bucket``. Returns the number of deleted objects."""
    return delete_keys(s3, bucket, [obj.key for obj in iter_objects(s3, bucket)])


def file_md5(path: Path) -> str:
    digest = hashlib.md5()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1 << 20), b""):
            digest.update(chunk)
    return digest.hexdigest()


def local_files(directory: Path) -> dict[str, Path]:
    return {
        path.relative_to(directory).as_posix(): path
        for path in sorted(directory.rglob("*"))
        if path.is_file()
    }


def content_type_for(path: Path) -> str:
    guessed, _ = mimetypes.guess_type(path.name)
    return guessed or "application/octet-stream"


def mirror_directory(s3, directory: Path, bucket: str, *, delete: bool = True) -> SyncResult:
    """Make ``bucket`` hold exactly the files under ``directory``.

    Objects whose size and MD5 ETag already match are left alone; remote keys
    with no local counterpart are deleted when ``delete`` is set.
    """
    local = local_files(directory)
    remote = {obj.key: obj for obj in iter_objects(s3, bucket)}

    uploaded = 0
    unchanged = 0
    for key, path in local.items():
        existing = remote.get(key)
        if (
            existing is not None
            and existing.size == path.stat().st_size
            and existing.etag == file_md5(path)
        ):
            unchanged += 1
            continue
        s3.upload_file(str(path), bucket, key, ExtraArgs={"ContentType": content_type_for(path)})
        uploaded += 1

    deleted = 0
    if delete:
        stale = sorted(key for key in remote if key not in local)
        deleted = delete_keys(s3, bucket, stale)

    return SyncResult(uploaded=uploaded, unchanged=unchanged, deleted=deleted)
