import socket
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import patch

import pytest

from knowledge_hub.utils.http import normalize_base_url, validate_fetch_url
from knowledge_hub.utils.jsonschema import object_schema, validate_payload
from knowledge_hub.utils.serialization import dumps, json_default, loads_or
from knowledge_hub.utils.time import utc_iso_ago, utc_now_iso


def _addrinfo(ip: str):
    return [(socket.AF_INET, socket.SOCK_STREAM, socket.IPPROTO_TCP, "", (ip, 0))]


def test_validate_payload():
    schema = object_schema({"a": {"type": "integer"}, "b": {"type": "string"}}, required=("a",))

    assert validate_payload(schema, {"a": 1}) == []

    errors = validate_payload(schema, {"b": 3})
    assert len(errors) == 2
    assert any("'a' is a required property" in error for error in errors)
    assert any(error.startswith("b: ") for error in errors)


def test_object_schema_omits_empty_required():
    assert object_schema({}) == {"type": "object", "properties": {}}


def test_normalize_base_url():
    assert normalize_base_url("HTTPS://graph.local:8102/") == "https://graph.local:8102"
    assert normalize_base_url(" http://a.local/base/ ") == "http://a.local/base"


@pytest.mark.parametrize(
    "value",
    ["", "ftp://a.local", "http://", "http://a.local/?q=1", "http://user:pw@a.local"],
)
def test_normalize_base_url_rejects(value):
    with pytest.raises(ValueError):
        normalize_base_url(value, label="STORAGE_SERVICE_URL")


def test_validate_fetch_url_public_address():
    with patch("knowledge_hub.utils.http.socket.getaddrinfo", return_value=_addrinfo("93.184.216.34")):
        assert validate_fetch_url("https://example.com/page") == "https://example.com/page"


@pytest.mark.parametrize("ip", ["10.0.0.5", "127.0.0.1", "169.254.169.254", "192.168.1.20"])
def test_validate_fetch_url_rejects_non_public(ip):
    with patch("knowledge_hub.utils.http.socket.getaddrinfo", return_value=_addrinfo(ip)):
        with pytest.raises(ValueError, match="non-public"):
            validate_fetch_url("http://internal.example/")


def test_validate_fetch_url_rejects_scheme():
    with pytest.raises(ValueError, match="http or https"):
        validate_fetch_url("file:///etc/passwd")


def test_validate_fetch_url_dns_failure_passes_through():
    with patch(
        "knowledge_hub.utils.http.socket.getaddrinfo", side_effect=socket.gaierror("no such host")
    ):
        assert validate_fetch_url("http://nowhere.invalid/") == "http://nowhere.invalid/"


def test_json_default():
    dt = datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert json_default(dt) == dt.isoformat()
    assert json_default(Decimal("10")) == 10
    assert json_default(Decimal("10.5")) == 10.5
    assert json_default(b"abc") == "abc"
    assert json_default({1, 2}) in ([1, 2], [2, 1])


def test_dumps_is_deterministic():
    assert dumps({"b": 1, "a": "é"}) == '{"a": "é", "b": 1}'


def test_loads_or_falls_back():
    assert loads_or(None, []) == []
    assert loads_or("not json", {}) == {}
    assert loads_or('{"x": 1}', {}) == {"x": 1}


def test_time_helpers_are_ordered():
    assert utc_iso_ago(60) < utc_now_iso()
