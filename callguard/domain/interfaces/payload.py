"""Interface for request payloads passed through the gateway.

The gateway treats payloads as opaque except for a size proxy, which
drives the input-too-large shrink policy.
"""

import abc

from callguard.domain.models.common import JsonBody


class RequestPayload(abc.ABC):
    """Abstract Base Class for a payload the gateway can send and shrink."""

    #: Whether truncated() may be used to retry an oversized request.
    shrinkable: bool = True

    @property
    @abc.abstractmethod
    def size(self) -> int:
        """Length proxy used by the shrink policy (e.g. prompt characters)."""
        pass

    @abc.abstractmethod
    def truncated(self, target_size: int, notice: str) -> "RequestPayload":
        """Returns a copy whose size is at most target_size and ends with notice.

        Args:
            target_size: The maximum size of the returned payload.
            notice: Marker appended so the upstream knows content was cut.
        """
        pass

    @abc.abstractmethod
    def to_body(self) -> JsonBody:
        """Renders the JSON body sent to the upstream."""
        pass


class TextPayload(RequestPayload):
    """Plain text payload, rendered under a single body field."""

    def __init__(self, text: str, field_name: str = "prompt"):
        self.text = text
        self.field_name = field_name

    @property
    def size(self) -> int:
        return len(self.text)

    def truncated(self, target_size: int, notice: str) -> "TextPayload":
        return TextPayload(truncate_text(self.text, target_size, notice), self.field_name)

    def to_body(self) -> JsonBody:
        return {self.field_name: self.text}


def truncate_text(text: str, target_size: int, notice: str) -> str:
    """Cuts text so that text + notice fits within target_size.

    A notice left by an earlier truncation is dropped first so repeated
    shrinking never stacks markers.
    """
    if text.endswith(notice):
        text = text[: -len(notice)]
    keep = max(0, target_size - len(notice))
    return text[:keep] + notice
