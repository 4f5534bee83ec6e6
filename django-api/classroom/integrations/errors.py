"""Delivery error hierarchy for outbound calls.

TransientDeliveryError is retried by tenacity; PermanentDeliveryError is not.
"""


class DeliveryError(Exception):
    """Base exception for calls to external collaborators."""

    pass


class TransientDeliveryError(DeliveryError):
    """Temporary failure that may succeed on retry.

    Examples: connection resets, timeouts, 5xx responses, SMTP hiccups.
    """

    pass


class PermanentDeliveryError(DeliveryError):
    """Failure that won't succeed on retry.

    Examples: rejected credentials, malformed recipient, 4xx responses.
    """

    pass
