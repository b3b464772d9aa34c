"""Base exception classes for Social Publisher."""


class PublisherError(Exception):
    """
    Base exception for all Social Publisher errors.

    All custom exceptions in the application should inherit from this class
    to enable consistent error handling and catching.
    """

    pass
