"""Tests for the executor module (argument mapping and HTTP calls)."""

import base64
import json

import httpx
import pytest

from openapi_mcp.config import ServerConfig
from openapi_mcp.errors import NotFoundError, ParameterValidationError, TransportError
from openapi_mcp.executor import (
    RequestExecutor,
    coerce_value,
    encode_body,
    negotiate_content_type,
)
from openapi_mcp.loader import load_document


def _param(type_: str, name: str = "p") -> dict:
    return {"name": name, "in": "query", "schema": {"type": type_}}


class TestCoerceValue:
    """Test per-type coercion of caller-supplied values."""

    def test_integer_from_string(self):
        assert coerce_value(_param("integer"), "42") == 42

    def test_number_from_string(self):
        assert coerce_value(_param("number"), "2.5") == 2.5

    def test_integer_passthrough(self):
        assert coerce_value(_param("integer"), 7) == 7

    def test_integer_failure_names_param_and_value(self):
        with pytest.raises(ValueError, match="Parameter page must be a valid number, got: abc"):
            coerce_value(_param("integer", "page"), "abc")

    def test_nan_rejected(self):
        with pytest.raises(ValueError):
            coerce_value(_param("number"), "nan")

    def test_boolean_passthrough(self):
        assert coerce_value(_param("boolean"), False) is False

    def test_boolean_strings_case_insensitive(self):
        assert coerce_value(_param("boolean"), "TRUE") is True
        assert coerce_value(_param("boolean"), "False") is False

    def test_boolean_failure(self):
        with pytest.raises(ValueError, match="must be a boolean"):
            coerce_value(_param("boolean"), "yes")

    def test_array_passthrough(self):
        assert coerce_value(_param("array"), ["a"]) == ["a"]

    def test_array_from_json_string(self):
        assert coerce_value(_param("array"), '["x", "y"]') == ["x", "y"]

    def test_array_from_comma_string(self):
        assert coerce_value(_param("array"), "a,b,c") == ["a", "b", "c"]

    def test_array_tokens_trimmed(self):
        assert coerce_value(_param("array"), " a , b ") == ["a", "b"]

    def test_array_failure(self):
        with pytest.raises(ValueError, match="must be an array"):
            coerce_value(_param("array"), 5)

    def test_other_types_stringified(self):
        assert coerce_value(_param("string"), 5) == "5"
        assert coerce_value({"name": "p", "in": "query"}, True) == "true"


class TestNegotiateContentType:
    def _body(self, *types):
        return {"content": {t: {} for t in types}}

    def test_json_preferred_over_multipart(self):
        assert negotiate_content_type(self._body("multipart/form-data", "application/json"), {}) == "application/json"

    def test_preference_order(self):
        body = self._body("multipart/form-data", "application/x-www-form-urlencoded", "text/xml", "application/xml")
        assert negotiate_content_type(body, {}) == "application/xml"
        assert negotiate_content_type(self._body("multipart/form-data", "text/xml"), {}) == "text/xml"

    def test_first_declared_fallback(self):
        assert negotiate_content_type(self._body("text/csv", "image/png"), {}) == "text/csv"

    def test_caller_header_wins(self):
        body = self._body("application/json")
        assert negotiate_content_type(body, {"content-type": "text/plain"}) == "text/plain"

    def test_no_content(self):
        assert negotiate_content_type({}, {}) is None


class TestEncodeBody:
    def test_json_string_parsed(self):
        assert encode_body('{"a": 1}', "application/json") == {"a": 1}

    def test_json_object_passthrough(self):
        assert encode_body({"a": 1}, "application/json") == {"a": 1}

    def test_form_flattened(self):
        assert encode_body({"a": "1", "b": "x y"}, "application/x-www-form-urlencoded") == "a=1&b=x+y"

    def test_other_passthrough(self):
        payload = {"file": "data"}
        assert encode_body(payload, "multipart/form-data") is payload
        assert encode_body("<a/>", "application/xml") == "<a/>"


class TestPrepare:
    """Validation and routing, without I/O."""

    async def test_unknown_operation(self, executor, fake_api):
        with pytest.raises(NotFoundError):
            await executor.execute("nope", {})
        assert fake_api.requests == []

    async def test_missing_params_aggregated(self, executor, fake_api):
        with pytest.raises(ParameterValidationError) as exc_info:
            await executor.execute("getUserById", {})
        err = exc_info.value
        assert str(err) == "Missing required parameters: userId (path), X-Request-Id (header)"
        assert err.missing == [("userId", "path"), ("X-Request-Id", "header")]
        assert fake_api.requests == []

    async def test_null_counts_as_missing(self, executor):
        with pytest.raises(ParameterValidationError, match="userId \\(path\\)"):
            executor.prepare("getUserById", {"userId": None, "X-Request-Id": "r"})

    async def test_coercion_errors_aggregated_with_missing(self, executor, fake_api):
        with pytest.raises(ParameterValidationError) as exc_info:
            await executor.execute("listUsers", {"page": "one", "active": "maybe"})
        message = str(exc_info.value)
        assert "page" in message and "active" in message
        assert len(exc_info.value.problems) == 2
        assert fake_api.requests == []

    async def test_path_value_url_encoded(self, executor):
        request = executor.prepare("getUserById", {"userId": "a b/c", "X-Request-Id": "r1"})
        assert request.url == "https://api.example.com/v1/users/a%20b%2Fc"
        assert request.headers == {"X-Request-Id": "r1"}

    async def test_query_values_coerced(self, executor):
        request = executor.prepare("listUsers", {"page": "2", "active": "true", "fields": "a,b,c"})
        assert request.params == {"page": 2, "active": True, "fields": ["a", "b", "c"]}

    async def test_non_ascii_header_rejected(self, executor, fake_api):
        with pytest.raises(ParameterValidationError, match="X-Request-Id must contain only ASCII") as exc_info:
            await executor.execute("getUserById", {"userId": "1", "X-Request-Id": "caf\u00e9"})
        assert exc_info.value.problems == [
            "Header X-Request-Id must contain only ASCII characters, got: caf\u00e9"
        ]
        assert fake_api.requests == []

    async def test_invalid_json_body(self, executor):
        with pytest.raises(ParameterValidationError, match="not valid JSON"):
            executor.prepare("createUser", {"body": "{oops"})

    async def test_body_ignored_without_request_body(self, executor):
        request = executor.prepare("deleteUser", {"userId": "1", "body": {"x": 1}})
        assert request.body is None


class TestExecute:
    """Full calls through the mock transport."""

    async def test_success_result(self, executor, fake_api):
        fake_api.payload = [{"id": 1}]
        result = await executor.execute("listUsers", {"page": 3, "role": "admin"})
        assert result.status == 200
        assert result.status_text == "OK"
        assert result.data == [{"id": 1}]
        assert result.method == "GET"
        assert result.url == "https://api.example.com/v1/users"
        sent = fake_api.last
        assert sent.url.params["page"] == "3"
        assert sent.url.params["role"] == "admin"

    async def test_array_query_repeated(self, executor, fake_api):
        await executor.execute("listUsers", {"fields": "a,b"})
        assert fake_api.last.url.params.get_list("fields") == ["a", "b"]

    async def test_json_body(self, executor, fake_api):
        await executor.execute("createUser", {"body": '{"username": "ann", "email": "a@x.io"}'})
        sent = fake_api.last
        assert sent.method == "POST"
        assert sent.headers["content-type"] == "application/json"
        assert json.loads(sent.content) == {"username": "ann", "email": "a@x.io"}

    async def test_json_string_body_stays_json(self, executor, fake_api):
        await executor.execute("createUser", {"body": '"hello"'})
        assert json.loads(fake_api.last.content) == "hello"

    async def test_json_null_body_sent(self, executor, fake_api):
        await executor.execute("createUser", {"body": "null"})
        assert fake_api.last.content == b"null"

    async def test_multipart_and_json_selects_json(self, executor, fake_api):
        await executor.execute("uploadFile", {"body": {"url": "https://x"}})
        assert fake_api.last.headers["content-type"] == "application/json"

    async def test_caller_content_type_header_wins(self, fake_api, http_client):
        doc = load_document({
            "servers": [{"url": "https://api.example.com"}],
            "paths": {"/r": {"post": {
                "operationId": "post_r",
                "parameters": [{"name": "Content-Type", "in": "header", "schema": {"type": "string"}}],
                "requestBody": {"content": {"application/json": {}, "text/plain": {}}},
            }}},
        })
        executor = RequestExecutor.from_document(doc, client=http_client)
        await executor.execute("post_r", {"Content-Type": "text/plain", "body": "hello"})
        assert fake_api.last.headers["content-type"] == "text/plain"
        assert fake_api.last.content == b"hello"

    async def test_form_body(self, executor, fake_api):
        await executor.execute("submitForm", {"body": {"a": "1", "b": "two"}})
        sent = fake_api.last
        assert sent.headers["content-type"] == "application/x-www-form-urlencoded"
        assert sent.content == b"a=1&b=two"

    async def test_empty_response_body(self, executor, fake_api):
        fake_api.status = 204
        fake_api.payload = None
        result = await executor.execute("deleteUser", {"userId": "1"})
        assert result.status == 204
        assert result.data is None

    async def test_text_response_body(self, executor, fake_api):
        fake_api.payload = "plain"
        result = await executor.execute("deleteUser", {"userId": "1"})
        assert result.data == "plain"

    async def test_non_2xx_is_transport_error(self, executor, fake_api):
        fake_api.status = 404
        fake_api.payload = {"error": "no such user"}
        with pytest.raises(TransportError) as exc_info:
            await executor.execute("deleteUser", {"userId": "9"})
        err = exc_info.value
        assert err.status == 404
        assert err.status_text == "Not Found"
        assert err.data == {"error": "no such user"}
        assert err.method == "DELETE"
        assert err.url == "https://api.example.com/v1/users/9"
        assert str(err) == 'HTTP 404: Not Found - {"error": "no such user"}'
        assert len(fake_api.requests) == 1

    async def test_network_failure_not_retried(self, executor, fake_api):
        fake_api.error = httpx.ConnectError("connection refused")
        with pytest.raises(TransportError, match="connection refused") as exc_info:
            await executor.execute("deleteUser", {"userId": "1"})
        assert exc_info.value.status is None
        assert len(fake_api.requests) == 1


class TestConfiguredHeaders:
    async def test_default_and_extra_headers(self, user_api, fake_api, http_client):
        config = ServerConfig(headers={"X-API-Key": "k"}, username="ann", password="secret")
        executor = RequestExecutor.from_document(user_api, config, client=http_client)
        await executor.execute("deleteUser", {"userId": "1"})
        sent = fake_api.last
        assert sent.headers["x-api-key"] == "k"
        token = base64.b64encode(b"ann:secret").decode()
        assert sent.headers["authorization"] == f"Basic {token}"
        assert sent.headers["content-type"] == "application/json"

    async def test_base_url_override(self, user_api, fake_api, http_client):
        executor = RequestExecutor.from_document(
            user_api, ServerConfig(base_url="http://localhost:8080/"), client=http_client
        )
        await executor.execute("deleteUser", {"userId": "1"})
        assert str(fake_api.last.url) == "http://localhost:8080/users/1"


class TestClientLifecycle:
    async def test_injected_client_left_open(self, user_api, fake_api, http_client):
        async with RequestExecutor.from_document(user_api, client=http_client) as executor:
            await executor.execute("deleteUser", {"userId": "1"})
        assert not http_client.is_closed
        assert len(fake_api.requests) == 1

    async def test_own_client_closed(self, user_api):
        async with RequestExecutor.from_document(user_api) as executor:
            client = executor.client
        assert client.is_closed
