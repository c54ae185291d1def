"""Port: the message broker the outbox relay publishes to."""

from __future__ import annotations

from abc import ABC, abstractmethod


class MessageBroker(ABC):
    """At-least-once publish. The broker is not assumed to deduplicate.

    Implementations bound every publish with their own timeout, configured
    when the broker is built.
    """

    @abstractmethod
    def publish(self, envelope: dict) -> None:
        """Publish one envelope and wait for the broker's acknowledgement.

        Returns only after the broker accepted the message. Raises
        BrokerPublishError on rejection, timeout, or connection failure.
        """

    def close(self) -> None:
        """Release connections. Default: nothing to do."""
