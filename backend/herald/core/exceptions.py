"""
Error taxonomy shared by the registration API and the dispatcher.

Delivery outcomes (invalidated / throttled / failed) are not exceptions:
they are DeliveryOutcome values and never escape a dispatch cycle.
"""


class HeraldError(Exception):
    """Base class for errors surfaced to callers or operators."""

    status_code = 500


class ValidationError(HeraldError, ValueError):
    """Malformed or missing request fields. No state has been changed."""

    status_code = 400


class StoreUnavailable(HeraldError):
    """The subscription store could not be reached. Safe to retry."""

    status_code = 503


class ChannelUnavailable(StoreUnavailable):
    """The intent channel could not accept the message."""


class ConfigurationError(HeraldError):
    """Sender key material has not been provisioned."""

    status_code = 500
