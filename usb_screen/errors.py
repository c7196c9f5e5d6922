"""
Error taxonomy for the screen driver.

Fatal errors (connection, capacity, unsupported content) propagate to the
caller. Soft outcomes such as a missing ack are reported as result values
(see ``command_transport.AckStatus``) rather than raised.
"""


class ScreenError(Exception):
    """Base exception for screen driver errors."""

    pass


class SerialConnectionError(ScreenError):
    """Raised when the serial channel cannot be opened, written or read."""

    pass


class ProtocolTimeoutError(ScreenError):
    """Raised when a response is required but none arrived in the window."""

    pass


class CapacityError(ScreenError):
    """Raised when a flash write has no room left in the page space."""

    pass


class UnsupportedFormatError(ScreenError):
    """Raised for unknown content types or image inputs."""

    pass
