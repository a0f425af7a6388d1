"""
Tests for the Bedrock adapter: request shape, status mapping and error translation.
"""
import asyncio
import io
import json
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError, ReadTimeoutError

from app.config import Settings
from app.responses import NetworkError, ProviderError
from app.worker.bedrock_client import BedrockClient, PollResult, translate_error


def client_error(code, operation="InvokeModel"):
    return ClientError({"Error": {"Code": code, "Message": f"raw {code} detail"}}, operation)


@pytest.fixture
def bedrock():
    settings = Settings(aws_access_key_id="AKIATEST", aws_secret_access_key="secret", aws_region="us-east-1")
    client = BedrockClient(settings)
    client._runtime = MagicMock()
    client._s3 = MagicMock()
    return client


class TestTranslateError:
    @pytest.mark.parametrize(
        "code,api_code,status,retryable",
        [
            ("ValidationException", "VALIDATION_ERROR", 400, False),
            ("ThrottlingException", "RATE_LIMIT_EXCEEDED", 429, True),
            ("ServiceQuotaExceededException", "RATE_LIMIT_EXCEEDED", 429, True),
            ("AccessDeniedException", "ACCESS_DENIED", 403, False),
            ("ExpiredTokenException", "ACCESS_DENIED", 403, False),
            ("ResourceNotFoundException", "RESOURCE_NOT_FOUND", 404, False),
            ("ServiceUnavailableException", "SERVICE_UNAVAILABLE", 503, True),
            ("InternalServerException", "SERVICE_UNAVAILABLE", 503, True),
            ("ModelTimeoutException", "MODEL_TIMEOUT", 504, True),
            ("SomethingNew", "PROVIDER_ERROR", 502, True),
        ],
    )
    def test_client_errors(self, code, api_code, status, retryable):
        error = translate_error(client_error(code))
        assert isinstance(error, ProviderError)
        assert error.error_code == api_code
        assert error.status_code == status
        assert error.retryable is retryable
        assert error.provider_code == code
        assert "raw" not in error.message

    def test_connection_errors(self):
        assert isinstance(translate_error(EndpointConnectionError(endpoint_url="https://bedrock")), NetworkError)
        assert isinstance(translate_error(ReadTimeoutError(endpoint_url="https://bedrock")), NetworkError)

    def test_unknown_exception(self):
        error = translate_error(RuntimeError("boom"))
        assert error.error_code == "PROVIDER_ERROR"
        assert error.retryable is True


class TestBedrockClient:
    def test_invoke_model(self, bedrock):
        bedrock._runtime.invoke_model.return_value = {"body": io.BytesIO(b'{"images": ["AAAA"]}')}
        raw = asyncio.run(bedrock.invoke_model("amazon.nova-canvas-v1:0", {"taskType": "TEXT_IMAGE"}))

        assert json.loads(raw) == {"images": ["AAAA"]}
        kwargs = bedrock._runtime.invoke_model.call_args.kwargs
        assert kwargs["modelId"] == "amazon.nova-canvas-v1:0"
        assert json.loads(kwargs["body"]) == {"taskType": "TEXT_IMAGE"}

    def test_invoke_model_error(self, bedrock):
        bedrock._runtime.invoke_model.side_effect = client_error("ThrottlingException")
        with pytest.raises(ProviderError) as exc:
            asyncio.run(bedrock.invoke_model("amazon.nova-canvas-v1:0", {}))
        assert exc.value.status_code == 429
        assert exc.value.retryable is True

    def test_start_async_invoke(self, bedrock):
        bedrock._runtime.start_async_invoke.return_value = {"invocationArn": "arn:inv/1"}
        arn = asyncio.run(bedrock.start_async_invoke("amazon.nova-reel-v1:0", {"taskType": "TEXT_VIDEO"}, "s3://out"))

        assert arn == "arn:inv/1"
        kwargs = bedrock._runtime.start_async_invoke.call_args.kwargs
        assert kwargs["outputDataConfig"] == {"s3OutputDataConfig": {"s3Uri": "s3://out"}}

    @pytest.mark.parametrize(
        "response,expected",
        [
            ({"status": "InProgress"}, PollResult(status="pending")),
            (
                {"status": "Completed", "outputDataConfig": {"s3OutputDataConfig": {"s3Uri": "s3://out/inv1/"}}},
                PollResult(status="completed", result_location="s3://out/inv1/output.mp4"),
            ),
            (
                {"status": "Failed", "failureMessage": "Content filtered"},
                PollResult(status="failed", failure_message="Content filtered"),
            ),
        ],
    )
    def test_status_mapping(self, bedrock, response, expected):
        bedrock._runtime.get_async_invoke.return_value = response
        assert asyncio.run(bedrock.get_async_invoke_status("arn:inv/1")) == expected

    def test_open_object(self, bedrock):
        body = MagicMock()
        body.iter_chunks.return_value = iter([b"ab", b"cd"])
        bedrock._s3.get_object.return_value = {"Body": body}

        assert list(bedrock.open_object("out", "inv1/output.mp4")) == [b"ab", b"cd"]
        bedrock._s3.get_object.assert_called_once_with(Bucket="out", Key="inv1/output.mp4")
        body.close.assert_called_once()

    def test_open_object_missing(self, bedrock):
        bedrock._s3.get_object.side_effect = client_error("NoSuchKey", "GetObject")
        with pytest.raises(ProviderError) as exc:
            list(bedrock.open_object("out", "missing"))
        assert exc.value.error_code == "RESOURCE_NOT_FOUND"

    def test_assume_role_failure_degrades(self, bedrock):
        bedrock.settings = Settings(assume_role_arn="arn:aws:iam::123:role/media")
        session = MagicMock()
        session.client.return_value.assume_role.side_effect = client_error("AccessDenied", "AssumeRole")
        bedrock._session = session
        runtime = bedrock._runtime

        assert asyncio.run(bedrock.validate_credentials()) is True
        assert bedrock.assumed_role is False
        assert bedrock._runtime is runtime
