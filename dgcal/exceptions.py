"""Exception hierarchy for dg-cal.

Every error carries a message, a dict of structured context and an optional
hint, so the CLI and the scheduler can log it as key/value pairs.
"""

from typing import Any


class DgCalError(Exception):
    """Base class of all dg-cal errors.

    Attributes:
        message: What went wrong.
        error_data: Structured context for logging.
        suggestion: How the operator may fix it.
    """

    def __init__(
        self,
        message: str,
        error_data: dict[str, Any] | None = None,
        suggestion: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_data = error_data or {}
        self.suggestion = suggestion

    def __str__(self) -> str:
        if not self.suggestion:
            return self.message
        return f"{self.message}\nSuggestion: {self.suggestion}"

    def to_dict(self) -> dict[str, Any]:
        """Returns the error as keyword arguments for a structured log call."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "error_data": self.error_data,
            "suggestion": self.suggestion,
        }


class NetworkError(DgCalError):
    """A request to the tournament site failed.

    Raised for connection failures and timeouts once retries are used up,
    and immediately for non-retryable statuses such as 403 (expired session)
    or 404.
    """

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
        retryable: bool = True,
        error_data: dict[str, Any] | None = None,
        suggestion: str | None = None,
    ):
        """
        Args:
            message: What went wrong.
            url: The requested URL.
            status_code: The last HTTP status received, if any.
            retryable: False when repeating the request cannot help.
            error_data: Extra context merged with the fields above.
            suggestion: Overrides the default hint.
        """
        context = {**(error_data or {}), "url": url, "status_code": status_code}
        context["retryable"] = retryable

        if suggestion is None:
            suggestion = (
                "The site may be down or slow; the next sync cycle retries."
                if retryable
                else "Check the URL and whether SESSION_ID and LOGIN_DATA are "
                "still valid."
            )

        super().__init__(message, context, suggestion)
        self.url = url
        self.status_code = status_code
        self.retryable = retryable


class ParseError(DgCalError):
    """Fetched content does not have the expected shape.

    Typical causes are a missing listing table or "Basisdaten" card, a link
    or feed UID without a tournament id, or a date in an unknown format.
    """

    def __init__(
        self,
        message: str,
        tournament_id: int | None = None,
        field: str | None = None,
        selector: str | None = None,
        html_snippet: str | None = None,
        error_data: dict[str, Any] | None = None,
        suggestion: str | None = None,
    ):
        """
        Args:
            message: What went wrong.
            tournament_id: The tournament being parsed, if known.
            field: The value that could not be extracted.
            selector: The CSS selector that matched nothing.
            html_snippet: Surrounding markup; only the first 500 chars are kept.
            error_data: Extra context merged with the fields above.
            suggestion: Overrides the default hint.
        """
        context = {
            **(error_data or {}),
            "tournament_id": tournament_id,
            "field": field,
            "selector": selector,
            "html_snippet": html_snippet[:500] if html_snippet else None,
        }

        if suggestion is None:
            suggestion = "The markup of the tournament site may have changed"
            suggestion += f"; check '{selector}'." if selector else "."

        super().__init__(message, context, suggestion)
        self.tournament_id = tournament_id
        self.field = field
        self.selector = selector


class StorageError(DgCalError):
    """Reading or writing the local store failed."""

    def __init__(
        self,
        message: str,
        path: str | None = None,
        error_data: dict[str, Any] | None = None,
        suggestion: str | None = None,
    ):
        super().__init__(
            message,
            {**(error_data or {}), "path": path},
            suggestion or "Check that the data directory is writable and intact.",
        )
        self.path = path


class NotFoundError(DgCalError):
    """A requested calendar or tournament does not exist."""

    def __init__(
        self,
        message: str,
        resource: str | None = None,
        identifier: str | None = None,
        error_data: dict[str, Any] | None = None,
        suggestion: str | None = None,
    ):
        context = {**(error_data or {}), "resource": resource, "identifier": identifier}
        super().__init__(message, context, suggestion)
        self.resource = resource
        self.identifier = identifier


class ConfigurationError(DgCalError):
    """A setting from the command line or environment is missing or invalid."""

    def __init__(
        self,
        message: str,
        parameter: str | None = None,
        expected_format: str | None = None,
        example: str | None = None,
        error_data: dict[str, Any] | None = None,
        suggestion: str | None = None,
    ):
        """
        Args:
            message: What went wrong.
            parameter: Option or environment variable name.
            expected_format: Description of a valid value.
            example: A valid value.
            error_data: Extra context merged with the fields above.
            suggestion: Overrides the default hint.
        """
        context = {
            **(error_data or {}),
            "parameter": parameter,
            "expected_format": expected_format,
            "example": example,
        }

        if suggestion is None:
            if parameter and expected_format:
                suggestion = f"Set {parameter} to {expected_format}"
                suggestion += f", e.g. {example}." if example else "."
            elif parameter:
                suggestion = f"Set {parameter} via option or environment."
            else:
                suggestion = "Check the command line options and environment."

        super().__init__(message, context, suggestion)
        self.parameter = parameter
        self.expected_format = expected_format
        self.example = example
