"""
Bedrock Provider Adapter
========================
Thin wrapper around the boto3 ``bedrock-runtime``, ``s3`` and ``sts``
clients: synchronous invoke, async invoke submission, async status
polling and result object streaming.

boto3 is blocking, so every SDK call is pushed to a worker thread with
``asyncio.to_thread`` and the public methods are coroutines. SDK
exceptions are translated into the API error taxonomy here and nowhere
else.
"""

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    NoCredentialsError,
    ReadTimeoutError,
)

from ..config import Settings
from ..logging_config import provider_logger as logger, timed
from ..responses import ApiException, NetworkError, ProviderError

# Provider error code -> ProviderError kind
ERROR_CODE_KINDS = {
    "ValidationException": "validation",
    "ThrottlingException": "throttling",
    "TooManyRequestsException": "throttling",
    "ServiceQuotaExceededException": "throttling",
    "AccessDeniedException": "access_denied",
    "UnrecognizedClientException": "access_denied",
    "ExpiredTokenException": "access_denied",
    "ResourceNotFoundException": "not_found",
    "NoSuchKey": "not_found",
    "NoSuchBucket": "not_found",
    "ServiceUnavailableException": "unavailable",
    "InternalServerException": "unavailable",
    "ModelTimeoutException": "timeout",
}

NETWORK_ERRORS = (
    EndpointConnectionError,
    ConnectTimeoutError,
    ReadTimeoutError,
    ConnectionClosedError,
)

# Bedrock async invocation status -> adapter status
ASYNC_STATUSES = {
    "InProgress": "pending",
    "Completed": "completed",
    "Failed": "failed",
}

VIDEO_OUTPUT_OBJECT = "output.mp4"
DOWNLOAD_CHUNK_BYTES = 1024 * 1024


def translate_error(error: Exception) -> ApiException:
    """Map a botocore exception onto the API error taxonomy."""
    if isinstance(error, ApiException):
        return error
    if isinstance(error, ClientError):
        code = error.response.get("Error", {}).get("Code", "")
        return ProviderError(ERROR_CODE_KINDS.get(code, "unknown"), provider_code=code)
    if isinstance(error, NETWORK_ERRORS):
        return NetworkError()
    if isinstance(error, NoCredentialsError):
        return ProviderError("access_denied", provider_code="NoCredentials")
    return ProviderError("unknown", provider_code=type(error).__name__)


@dataclass
class PollResult:
    status: str  # pending | completed | failed
    result_location: Optional[str] = None
    failure_message: Optional[str] = None


class BedrockClient:
    """Provider adapter backed by Amazon Bedrock."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.assumed_role = False
        self._boto_config = BotoConfig(
            region_name=settings.aws_region,
            retries={"max_attempts": 3, "mode": "standard"},
            read_timeout=120,
        )
        self._session = boto3.Session(
            aws_access_key_id=settings.aws_access_key_id or None,
            aws_secret_access_key=settings.aws_secret_access_key or None,
            aws_session_token=settings.aws_session_token or None,
            region_name=settings.aws_region,
        )
        self._build_clients()

    def _build_clients(self) -> None:
        self._runtime = self._session.client("bedrock-runtime", config=self._boto_config)
        self._s3 = self._session.client("s3", config=self._boto_config)

    # ------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------

    def assume_role(self, role_arn: str) -> Dict[str, Any]:
        """Assume role_arn and rebuild the clients with the temporary credentials."""
        sts = self._session.client("sts", config=self._boto_config)
        response = sts.assume_role(
            RoleArn=role_arn,
            RoleSessionName=self.settings.assume_role_session_name,
            DurationSeconds=self.settings.assume_role_duration_seconds,
        )
        credentials = response.get("Credentials")
        if not credentials:
            raise RuntimeError("Failed to assume role: no credentials returned")

        self._session = boto3.Session(
            aws_access_key_id=credentials["AccessKeyId"],
            aws_secret_access_key=credentials["SecretAccessKey"],
            aws_session_token=credentials.get("SessionToken"),
            region_name=self.settings.aws_region,
        )
        self._build_clients()
        self.assumed_role = True
        return credentials

    async def validate_credentials(self) -> bool:
        """Try role elevation once. Failure keeps the base credentials."""
        role_arn = self.settings.assume_role_arn
        if role_arn:
            try:
                await asyncio.to_thread(self.assume_role, role_arn)
                logger.info("assumed_role", role_arn=role_arn)
            except (ClientError, BotoCoreError, RuntimeError) as e:
                logger.warning(
                    "assume_role_failed_using_base_credentials",
                    role_arn=role_arn,
                    error_type=type(e).__name__,
                    error_message=str(e),
                )
        return self._runtime is not None

    # ------------------------------------------------------------
    # Invocation
    # ------------------------------------------------------------

    async def _call(self, operation: str, fn, **kwargs):
        try:
            return await asyncio.to_thread(fn, **kwargs)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"{operation} failed", error=e, operation=operation)
            raise translate_error(e) from e

    @timed(logger)
    async def invoke_model(self, model_id: str, payload: Dict[str, Any]) -> bytes:
        """Synchronous invocation. Returns the raw response body."""
        response = await self._call(
            "invoke_model",
            self._runtime.invoke_model,
            modelId=model_id,
            contentType="application/json",
            accept="application/json",
            body=json.dumps(payload),
        )
        return await asyncio.to_thread(response["body"].read)

    @timed(logger)
    async def start_async_invoke(
        self,
        model_id: str,
        model_input: Dict[str, Any],
        output_s3_uri: str,
    ) -> str:
        """Submit an async invocation. Returns the invocation ARN."""
        response = await self._call(
            "start_async_invoke",
            self._runtime.start_async_invoke,
            modelId=model_id,
            modelInput=model_input,
            outputDataConfig={"s3OutputDataConfig": {"s3Uri": output_s3_uri}},
        )
        return response["invocationArn"]

    async def get_async_invoke_status(self, invocation_arn: str) -> PollResult:
        response = await self._call(
            "get_async_invoke",
            self._runtime.get_async_invoke,
            invocationArn=invocation_arn,
        )
        status = ASYNC_STATUSES.get(response.get("status"), "pending")
        if status == "completed":
            s3_uri = response["outputDataConfig"]["s3OutputDataConfig"]["s3Uri"]
            return PollResult(
                status=status,
                result_location=f"{s3_uri.rstrip('/')}/{VIDEO_OUTPUT_OBJECT}",
            )
        if status == "failed":
            return PollResult(status=status, failure_message=response.get("failureMessage"))
        return PollResult(status=status)

    # ------------------------------------------------------------
    # Result objects
    # ------------------------------------------------------------

    def open_object(self, bucket: str, key: str) -> Iterator[bytes]:
        """Blocking chunk iterator over an S3 object."""
        try:
            response = self._s3.get_object(Bucket=bucket, Key=key)
            body = response["Body"]
            try:
                for chunk in body.iter_chunks(chunk_size=DOWNLOAD_CHUNK_BYTES):
                    yield chunk
            finally:
                body.close()
        except (ClientError, BotoCoreError) as e:
            raise translate_error(e) from e
