"""Fetcher for Hockey Victoria team iCal exports."""
import logging
import time

import requests

logger = logging.getLogger(__name__)


class CalendarFetchError(requests.RequestException):
    """Raised when the server answers without a usable calendar."""


class CalendarFetcher:
    """Downloads raw team calendars from Hockey Victoria."""

    ICAL_BASE_URL = "https://www.hockeyvictoria.org.au/games/team/export/ical/"
    HEADERS = {
        'User-Agent': (
            'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
            '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'
        ),
        'Accept': 'text/calendar,*/*',
        'Accept-Language': 'en-US,en;q=0.9',
        'Referer': 'https://www.hockeyvictoria.org.au/'
    }

    def __init__(self, timeout: int = 30, max_retries: int = 3,
                 base_delay: float = 1):
        """
        Initialize the calendar fetcher.

        Args:
            timeout: HTTP request timeout in seconds (default: 30)
            max_retries: Attempts per calendar (default: 3)
            base_delay: First backoff delay in seconds (default: 1)
        """
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_delay = base_delay

    def build_calendar_url(self, team_ref: str) -> str:
        """
        Build the iCal export URL for a team.

        Args:
            team_ref: Fixture URL such as
                "https://www.hockeyvictoria.org.au/games/team/21935/336963"
                or a bare "21935/336963" team id

        Returns:
            iCal export URL
        """
        team_id = team_ref.strip()
        if '/games/team/' in team_id:
            parts = team_id.rstrip('/').split('/')
            team_index = parts.index('team')
            if len(parts) > team_index + 2:
                team_id = f"{parts[team_index + 1]}/{parts[team_index + 2]}"

        return f"{self.ICAL_BASE_URL}{team_id}"

    def fetch_calendar(self, team_ref: str) -> str:
        """
        Fetch raw calendar text for a team with retry logic.

        Args:
            team_ref: Fixture URL or team id

        Returns:
            Raw iCal text

        Raises:
            requests.RequestException: If all retry attempts fail
        """
        url = self.build_calendar_url(team_ref)

        for attempt in range(self.max_retries):
            try:
                logger.info(
                    f"Downloading calendar from {url} "
                    f"(attempt {attempt + 1}/{self.max_retries})"
                )
                response = requests.get(
                    url,
                    headers=self.HEADERS,
                    timeout=self.timeout
                )
                response.raise_for_status()
                data = self._validate_response(response)
                logger.info(f"Downloaded calendar ({len(data)} bytes)")
                return data

            except requests.RequestException as e:
                if attempt < self.max_retries - 1:
                    # Calculate exponential backoff delay
                    delay = self.base_delay * (2 ** attempt)
                    logger.warning(
                        f"Request failed (attempt {attempt + 1}/{self.max_retries}): {e}. "
                        f"Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                else:
                    logger.error(
                        f"All {self.max_retries} retry attempts failed. Last error: {e}"
                    )
                    raise

    def _validate_response(self, response: requests.Response) -> str:
        """
        Check that a response actually carries a calendar.

        Args:
            response: Successful HTTP response

        Returns:
            Response body text

        Raises:
            CalendarFetchError: If the body is blocked, empty, or not iCal
        """
        if response.status_code == 202:
            if response.headers.get('x-amzn-waf-action') == 'challenge':
                raise CalendarFetchError(
                    "Download blocked by WAF challenge (status 202)",
                    response=response
                )
            raise CalendarFetchError(
                "Server returned 202 Accepted with no calendar content",
                response=response
            )

        data = response.text
        if not data or not data.strip():
            raise CalendarFetchError(
                "Downloaded calendar is empty",
                response=response
            )

        if 'BEGIN:VCALENDAR' not in data:
            raise CalendarFetchError(
                f"Downloaded content is not a calendar ({len(data)} bytes, "
                f"no VCALENDAR found)",
                response=response
            )

        return data
