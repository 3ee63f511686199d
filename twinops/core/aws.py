import boto3
from botocore.config import Config

from twinops.core.context import RunContext

# CloudFront is a global service homed in us-east-1.
CLOUDFRONT_REGION = "us-east-1"

# Botocore's own retry budget only; runs are never retried as a whole.
_CLIENT_CONFIG = Config(retries={"mode": "standard"})


class AWSClients:
    """Creates boto3 clients bound to the run's profile and region."""

    def __init__(self, region: str, profile: str | None = None) -> None:
        self.region = region
        self.profile = profile
        self._session = None

    @classmethod
    def from_context(cls, context: RunContext) -> "AWSClients":
        return cls(context.region, context.aws_profile)

    @property
    def session(self):
        if self._session is None:
            self._session = boto3.Session(profile_name=self.profile, region_name=self.region)
        return self._session

    def s3(self):
        return self.session.client("s3", config=_CLIENT_CONFIG)

    def cloudfront(self):
        return self.session.client(
            "cloudfront", region_name=CLOUDFRONT_REGION, config=_CLIENT_CONFIG
        )
