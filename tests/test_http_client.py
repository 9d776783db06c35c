"""Tests for the shared HTTP helpers."""

from unittest.mock import MagicMock, patch

import requests

from common.http_client import fetch_text, get_json
from constants import Constants


def _response(status=200, text="{}"):
    response = MagicMock()
    response.status_code = status
    response.headers = {"Content-Type": "application/json"}
    response.text = text
    return response


@patch("common.http_client.requests.get")
def test_user_agent_and_timeout_always_sent(mock_get):
    mock_get.return_value = _response()
    fetch_text("https://crates.io/api/v1/crates/serde", context="rust", headers={"Accept": "application/json"})
    kwargs = mock_get.call_args.kwargs
    assert kwargs["headers"]["User-Agent"] == Constants.USER_AGENT
    assert kwargs["headers"]["Accept"] == "application/json"
    assert kwargs["timeout"] == Constants.REQUEST_TIMEOUT


@patch("common.http_client.requests.get", side_effect=requests.Timeout("slow"))
def test_timeout_is_status_zero(mock_get):
    status, headers, body = fetch_text("https://pypi.org/pypi/x/json", context="python")
    assert status == 0
    assert headers == {}
    assert "timed out" in body
    assert mock_get.call_count == 1


@patch("common.http_client.requests.get", side_effect=requests.ConnectionError("refused"))
def test_connection_error_is_status_zero(mock_get):
    status, _, body = fetch_text("https://pypi.org/pypi/x/json", context="python")
    assert status == 0
    assert "refused" in body


@patch("common.http_client.requests.get")
def test_get_json_decodes_body(mock_get):
    mock_get.return_value = _response(text='{"info": {"name": "requests"}}')
    status, _, data = get_json("https://pypi.org/pypi/requests/json", context="python")
    assert status == 200
    assert data == {"info": {"name": "requests"}}


@patch("common.http_client.requests.get")
def test_get_json_invalid_body(mock_get):
    mock_get.return_value = _response(text="<html>")
    assert get_json("https://pypi.org/pypi/requests/json", context="python")[2] is None


@patch("common.http_client.requests.get")
def test_get_json_non_200(mock_get):
    mock_get.return_value = _response(status=404, text='{"message": "Not Found"}')
    status, _, data = get_json("https://pypi.org/pypi/nope/json", context="python")
    assert status == 404
    assert data is None
