"""Interface for presenting gateway results to the user.

Defines the contract for displaying responses, errors and resilience
state, allowing different UI implementations (e.g., console, web).
"""

import abc
from typing import Any, List

from callguard.domain.models.calls import GatewayStats


class UserInterface(abc.ABC):
    """Abstract Base Class for user interaction."""

    @abc.abstractmethod
    def display_output(self, output: str, **kwargs: Any) -> None:
        """Displays standard output to the user.

        Args:
            output: The text to display.
            **kwargs: Additional arguments for formatting (e.g., title).
        """
        pass

    @abc.abstractmethod
    def display_error(self, error_message: str, **kwargs: Any) -> None:
        """Displays an error message to the user."""
        pass

    @abc.abstractmethod
    def display_info(self, info_message: str, **kwargs: Any) -> None:
        """Displays an informational message to the user."""
        pass

    @abc.abstractmethod
    def display_stats(self, stats: List[GatewayStats]) -> None:
        """Displays resilience state for one or more upstreams."""
        pass
