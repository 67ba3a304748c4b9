"""Interface for presenting results to the operator.

Defines the contract for displaying API responses, status information,
errors and warnings, allowing different UI implementations (console, tests).
"""

import abc
from typing import Any, Dict

from ..models.api import ApiResponse


class UserInterface(abc.ABC):
    """Abstract Base Class for user interaction."""

    @abc.abstractmethod
    def display_response(self, response: ApiResponse, **kwargs: Any) -> None:
        """Displays an ApiResponse (data on success, code and message on failure).

        Args:
            response: The envelope returned by the API client.
            **kwargs: Additional arguments for formatting (e.g., title).
        """
        pass

    @abc.abstractmethod
    def display_status(self, status: Dict[str, Any], **kwargs: Any) -> None:
        """Displays a key/value status summary."""
        pass

    @abc.abstractmethod
    def display_error(self, error_message: str, **kwargs: Any) -> None:
        """Displays an error message to the user."""
        pass

    @abc.abstractmethod
    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        """Displays a warning message to the user."""
        pass

    @abc.abstractmethod
    def display_info(self, info_message: str, **kwargs: Any) -> None:
        """Displays an informational message to the user."""
        pass
