"""Tests for Scraper retry logic and session setup."""

from unittest.mock import MagicMock, patch

import pytest
from requests import Response
from requests.exceptions import ConnectionError, Timeout

from dgcal.exceptions import NetworkError
from dgcal.scraper import USER_AGENT, Scraper


@pytest.fixture()
def scraper() -> Scraper:
    return Scraper("session-token", "login-token", retries=3, backoff=0.5)


def _response(status_code: int, text: str = "") -> MagicMock:
    resp = MagicMock(spec=Response)
    resp.status_code = status_code
    resp.text = text
    return resp


def test_session_tokens_sent_as_cookies(scraper: Scraper) -> None:
    assert scraper.scraper.cookies.get("PHPSESSID") == "session-token"
    assert scraper.scraper.cookies.get("user_login_data") == "login-token"
    assert scraper.scraper.headers["User-Agent"] == USER_AGENT


@patch("dgcal.scraper.time.sleep")
def test_success_first_attempt(mock_sleep: MagicMock, scraper: Scraper) -> None:
    with patch.object(scraper.scraper, "get", return_value=_response(200, "ok")) as get:
        resp = scraper.get("http://example.com", params={"p": "events"})

    assert resp.text == "ok"
    get.assert_called_once_with(
        "http://example.com", params={"p": "events"}, timeout=scraper.timeout
    )
    mock_sleep.assert_not_called()


@patch("dgcal.scraper.time.sleep")
def test_retry_on_503(mock_sleep: MagicMock, scraper: Scraper) -> None:
    responses = [_response(503), _response(200, "Success")]
    with patch.object(scraper.scraper, "get", side_effect=responses) as get:
        resp = scraper.get("http://example.com")

    assert resp.status_code == 200
    assert get.call_count == 2
    mock_sleep.assert_called_once_with(0.5)


@patch("dgcal.scraper.time.sleep")
def test_retry_on_connection_error(mock_sleep: MagicMock, scraper: Scraper) -> None:
    side_effect = [ConnectionError("reset"), Timeout("slow"), _response(200)]
    with patch.object(scraper.scraper, "get", side_effect=side_effect) as get:
        resp = scraper.get("http://example.com")

    assert resp.status_code == 200
    assert get.call_count == 3
    # Exponential backoff: 0.5, 1.0
    assert [c.args[0] for c in mock_sleep.call_args_list] == [0.5, 1.0]


@patch("dgcal.scraper.time.sleep")
def test_no_retry_on_404(mock_sleep: MagicMock, scraper: Scraper) -> None:
    with patch.object(scraper.scraper, "get", return_value=_response(404)) as get:
        with pytest.raises(NetworkError) as exc:
            scraper.get("http://example.com/missing")

    assert get.call_count == 1
    assert exc.value.status_code == 404
    assert exc.value.retryable is False
    mock_sleep.assert_not_called()


@patch("dgcal.scraper.time.sleep")
def test_gives_up_after_retries(mock_sleep: MagicMock, scraper: Scraper) -> None:
    with patch.object(scraper.scraper, "get", return_value=_response(502)) as get:
        with pytest.raises(NetworkError) as exc:
            scraper.get("http://example.com")

    assert get.call_count == 3
    # No sleep after the final attempt
    assert mock_sleep.call_count == 2
    assert exc.value.status_code == 502
    assert exc.value.retryable is True
    assert exc.value.url == "http://example.com"


@patch("dgcal.scraper.logger")
@patch("dgcal.scraper.time.sleep")
def test_exhausted_retries_are_logged(
    mock_sleep: MagicMock, mock_logger: MagicMock, scraper: Scraper
) -> None:
    with patch.object(scraper.scraper, "get", side_effect=ConnectionError("down")):
        with pytest.raises(NetworkError):
            scraper.get("http://example.com")

    mock_logger.error.assert_called_once_with(
        "fetch_failed", url="http://example.com", attempts=3, error="down"
    )
