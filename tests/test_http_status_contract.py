# pyright: reportUnknownParameterType=false, reportUnknownMemberType=false
from unittest.mock import Mock, patch

import pytest

from arangonet.networking.client import Connection
from arangonet.networking.errors import ClientException, ServerException


def _mock_response(
    *,
    content: bytes = b"",
    status: int = 200,
    url: str = "http://127.0.0.1:8529/_db/_system/_api/document/c/1",
    reason: str = "OK",
):
    response = Mock()
    response.iter_content.side_effect = lambda chunk_size=None: iter(
        [content] if content else []
    )
    response.status_code = status
    response.url = url
    response.reason = reason
    response.headers = {"Content-Type": "application/json"}
    return response


def _connection():
    return Connection(endpoint="tcp://127.0.0.1:8529", timeout=5.0)


def test_404_with_error_document_is_server_exception():
    connection = _connection()

    with patch("requests.Session.send") as mock_send:
        mock_send.return_value = _mock_response(
            content=b'{"error":true,"errorNum":1202,"code":404,'
            b'"errorMessage":"document not found"}',
            status=404,
            reason="Not Found",
        )
        with pytest.raises(ServerException) as excinfo:
            connection.get("/_api/document/c/1")

    error = excinfo.value
    assert error.code == 404
    assert error.server_code == 1202
    assert error.message == "document not found"
    assert error.details["errorNum"] == 1202
    assert not isinstance(error, ClientException)


def test_500_with_plain_body_keeps_body_verbatim():
    connection = _connection()

    with patch("requests.Session.send") as mock_send:
        mock_send.return_value = _mock_response(
            content=b"server error",
            status=500,
            reason="Internal Server Error",
        )
        with pytest.raises(ServerException) as excinfo:
            connection.get("/_api/document/c/1")

    assert excinfo.value.code == 500
    assert excinfo.value.message == "server error"
    assert excinfo.value.server_code is None
    assert excinfo.value.details is None


def test_head_error_without_body_uses_reason():
    connection = _connection()

    with patch("requests.Session.send") as mock_send:
        mock_send.return_value = _mock_response(status=404, reason="Not Found")
        with pytest.raises(ServerException) as excinfo:
            connection.head("/_api/document/c/1")

    assert excinfo.value.code == 404
    assert excinfo.value.message == "Not Found"


def test_304_is_a_response():
    connection = _connection()

    with patch("requests.Session.send") as mock_send:
        mock_send.return_value = _mock_response(status=304, reason="Not Modified")
        response = connection.get(
            "/_api/document/c/1", headers={"If-None-Match": '"abc"'}
        )

    assert response.status_code == 304
    assert response.status_definition == "Not Modified"
    assert not response.is_error


def test_302_redirect_is_not_followed():
    connection = _connection()

    with patch("requests.Session.send") as mock_send:
        mock_send.return_value = _mock_response(status=302, reason="Found")
        response = connection.get("/_admin/aardvark")

    assert response.status_code == 302
    assert mock_send.call_count == 1
    assert mock_send.call_args.kwargs["allow_redirects"] is False
