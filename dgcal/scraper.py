import time

import cloudscraper
import structlog
from requests import Response
from requests.exceptions import RequestException

from .exceptions import NetworkError

logger = structlog.get_logger(__name__)

USER_AGENT = "dg-cal/0.1"

# Statuses worth another attempt; every other non-2xx status fails at once.
RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


class Scraper:
    def __init__(
        self,
        session_id: str,
        login_data: str,
        retries: int = 3,
        backoff: float = 1.0,
        timeout: float = 30.0,
    ):
        """
        Initialize the Scraper with an authenticated cloudscraper session.

        :param session_id: Value of the site's PHPSESSID cookie.
        :param login_data: Value of the site's user_login_data cookie.
        :param retries: Number of attempts per request.
        :param backoff: Base delay in seconds; attempt n waits backoff * 2**n.
        :param timeout: Per-request timeout in seconds.
        """
        self.scraper = cloudscraper.create_scraper()
        self.retries = max(1, retries)
        self.backoff = backoff
        self.timeout = timeout

        self.scraper.headers.update({"User-Agent": USER_AGENT})
        # Both tokens are sent as cookies on every request
        self.scraper.cookies.set("PHPSESSID", session_id)
        self.scraper.cookies.set("user_login_data", login_data)

    def get(self, url: str, params: dict[str, str] | None = None) -> Response:
        """
        Perform a GET request with bounded retries and exponential backoff.

        :param url: Target URL.
        :param params: Query parameters.
        :return: The successful (2xx) response.
        :raises NetworkError: On a non-retryable status or once all attempts
            are exhausted.
        """
        last_error = ""
        status_code: int | None = None

        for attempt in range(self.retries):
            # Only log retries (Attempt 2+) with attempt info
            if attempt > 0:
                logger.info(
                    "fetching_url", url=url, attempt=attempt + 1, retries=self.retries
                )
            else:
                logger.info("fetching_url", url=url)

            try:
                response = self.scraper.get(url, params=params, timeout=self.timeout)
            except RequestException as e:
                logger.warning("request_failed", url=url, error=str(e))
                last_error = str(e)
                status_code = None
            else:
                if 200 <= response.status_code < 300:
                    return response

                status_code = response.status_code
                if status_code not in RETRYABLE_STATUS_CODES:
                    logger.error("request_rejected", url=url, status_code=status_code)
                    raise NetworkError(
                        f"Unexpected status code {status_code} for {url}",
                        url=url,
                        status_code=status_code,
                        retryable=False,
                    )
                logger.warning("request_failed", url=url, status_code=status_code)
                last_error = f"HTTP {status_code}"

            if attempt < self.retries - 1:
                time.sleep(self.backoff * 2**attempt)

        logger.error("fetch_failed", url=url, attempts=self.retries, error=last_error)
        raise NetworkError(
            f"Failed to fetch {url} after {self.retries} attempts: {last_error}",
            url=url,
            status_code=status_code,
        )
