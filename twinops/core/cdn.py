"""CloudFront distribution lookup and cache invalidation."""

from __future__ import annotations

import time

INVALIDATE_ALL_PATH = "/*"


def website_domains(bucket: str, region: str) -> set[str]:
    """S3 website endpoint host names; older regions use a dash, newer ones a dot."""
    return {
        f"{bucket}.s3-website-{region}.amazonaws.com",
        f"{bucket}.s3-website.{region}.amazonaws.com",
    }


def find_distribution_id(cloudfront, bucket: str, region: str) -> str | None:
    domains = website_domains(bucket, region)
    paginator = cloudfront.get_paginator("list_distributions")
    for page in paginator.paginate():
        distribution_list = page.get("DistributionList") or {}
        for distribution in distribution_list.get("Items") or []:
            origins = (distribution.get("Origins") or {}).get("Items") or []
            for origin in origins:
                if origin.get("DomainName", "").lower() in domains:
                    return distribution["Id"]
    return None


def invalidate_all(cloudfront, distribution_id: str) -> str:
    response = cloudfront.create_invalidation(
        DistributionId=distribution_id,
        InvalidationBatch={
            "Paths": {"Quantity": 1, "Items": [INVALIDATE_ALL_PATH]},
            "CallerReference": f"twinops-{time.time_ns()}",
        },
    )
    return response["Invalidation"]["Id"]
