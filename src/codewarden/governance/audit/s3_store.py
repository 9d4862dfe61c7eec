"""S3-backed audit store for immutable, versioned audit logs."""

import json, logging, os, threading
from typing import Iterator, List, Optional

import boto3
from botocore.exceptions import ClientError
from pydantic import ValidationError

from codewarden.common.constants import AuditConstants
from codewarden.governance.audit.chain import ChainItem, UnreadableRecord
from codewarden.governance.audit.store import AuditStore
from codewarden.governance.schemas import AuditEvent

logger = logging.getLogger(__name__)


class S3AuditStore(AuditStore):
    """S3-backed audit store, one object per event.

    Keys embed the zero-padded chain sequence, so a lexical listing
    returns events in insertion order.
    """

    DEFAULT_REGION = "us-east-1"
    DEFAULT_PREFIX = "audit-logs/"
    DEFAULT_ENVIRONMENT = "production"

    def __init__(self, bucket_name: Optional[str] = None,
                 prefix: str = DEFAULT_PREFIX, environment: str = DEFAULT_ENVIRONMENT,
                 region: Optional[str] = None, aws_profile: Optional[str] = None,
                 enable_versioning: bool = True,
                 hash_algorithm: str = AuditConstants.HASH_ALGORITHM):
        self.bucket_name = bucket_name or os.environ.get("CODEWARDEN_AUDIT_S3_BUCKET")
        if not self.bucket_name:
            raise ValueError(
                "S3 bucket name required. Set CODEWARDEN_AUDIT_S3_BUCKET or pass bucket_name."
            )

        self.prefix = prefix
        self.environment = environment
        self.region = region or os.environ.get("AWS_DEFAULT_REGION", self.DEFAULT_REGION)
        self.enable_versioning = enable_versioning
        self.hash_algorithm = hash_algorithm

        if aws_profile:
            session = boto3.Session(profile_name=aws_profile)
            self.s3_client = session.client("s3", region_name=self.region)
        else:
            self.s3_client = boto3.client("s3", region_name=self.region)

        self._local_lock = threading.RLock()
        self._last_event: Optional[AuditEvent] = None

        self._ensure_bucket_configured()
        self._last_event = self._load_last_event()

        logger.info(
            f"Initialized S3AuditStore: bucket={self.bucket_name}, "
            f"env={self.environment}, versioning={self.enable_versioning}"
        )

    def _ensure_bucket_configured(self) -> None:
        """Ensure S3 bucket exists and is configured correctly."""
        try:
            self.s3_client.head_bucket(Bucket=self.bucket_name)
            logger.debug(f"S3 bucket {self.bucket_name} exists")
        except ClientError as e:
            if e.response["Error"]["Code"] == "404":
                raise ValueError(f"S3 bucket {self.bucket_name} does not exist")
            raise IOError(f"S3 bucket check failed: {e}") from e

        if self.enable_versioning:
            try:
                self.s3_client.put_bucket_versioning(
                    Bucket=self.bucket_name,
                    VersioningConfiguration={"Status": "Enabled"}
                )
                logger.debug(f"Enabled versioning on bucket {self.bucket_name}")
            except ClientError as e:
                logger.warning(f"Could not enable versioning: {e}")

    @property
    def partition_prefix(self) -> str:
        """Format: {prefix}{environment}/, e.g. audit-logs/production/"""
        return f"{self.prefix}{self.environment}/"

    def key_for(self, event: AuditEvent) -> str:
        """Format: {prefix}{environment}/{sequence:012d}_{event_id}.json"""
        return f"{self.partition_prefix}{event.sequence:012d}_{event.id}.json"

    def _list_keys(self) -> List[str]:
        try:
            paginator = self.s3_client.get_paginator("list_objects_v2")
            page_iterator = paginator.paginate(
                Bucket=self.bucket_name, Prefix=self.partition_prefix
            )
            keys = []
            for page in page_iterator:
                for obj in page.get("Contents", []):
                    keys.append(obj["Key"])
        except ClientError as e:
            logger.error(f"Failed to list S3 objects: {e}")
            raise IOError(f"S3 read failed: {e}") from e
        return sorted(keys)

    def _load_last_event(self) -> Optional[AuditEvent]:
        keys = self._list_keys()
        for key in reversed(keys):
            item = self._read(key, 0)
            if isinstance(item, AuditEvent):
                return item
        return None

    def _read(self, key: str, index: int) -> ChainItem:
        try:
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=key)
            body = response["Body"].read().decode("utf-8")
        except ClientError as e:
            logger.error(f"Failed to read audit object {key}: {e}")
            raise IOError(f"S3 read failed: {e}") from e
        try:
            return AuditEvent.model_validate(json.loads(body))
        except (json.JSONDecodeError, ValidationError) as e:
            return UnreadableRecord(index, f"{key}: {e}")

    def append(self, event: AuditEvent) -> None:
        """Write the event as a new object.

        Raises:
            IOError: If write fails
        """
        key = self.key_for(event)
        try:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=event.to_jsonl().encode("utf-8"),
                ContentType="application/json",
                Metadata={
                    "event-type": event.event_type.value,
                    "timestamp": event.timestamp.isoformat(),
                    "environment": self.environment,
                },
            )
        except ClientError as e:
            logger.error(f"Failed to append to S3: {e}")
            raise IOError(f"S3 write failed: {e}") from e

        with self._local_lock:
            self._last_event = event
        logger.debug(f"Appended audit event to S3: {key}")

    def records(self) -> Iterator[ChainItem]:
        for index, key in enumerate(self._list_keys()):
            yield self._read(key, index)

    def events(self) -> Iterator[AuditEvent]:
        for item in self.records():
            if isinstance(item, UnreadableRecord):
                logger.warning(f"Could not parse audit object: {item.error}")
                continue
            yield item

    def last_event(self) -> Optional[AuditEvent]:
        with self._local_lock:
            return self._last_event

    def count(self) -> int:
        return len(self._list_keys())
