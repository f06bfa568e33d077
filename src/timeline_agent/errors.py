"""
Error Types
===========

Exception hierarchy shared by the ingestion and query layers.

Taxonomy:
    - StreamTransportError: stream or completion connection dropped abnormally
    - FramePayloadError: a stream event could not be turned into a FrameBatch
    - QueryRejected: a query was submitted without text or without a selection
"""


class TimelineAgentError(Exception):
    """Base class for all timeline agent errors."""
    pass


class StreamTransportError(TimelineAgentError):
    """Raised when the ingestion connection fails for any reason other than a clean close."""
    pass


class FramePayloadError(TimelineAgentError):
    """Raised when an inbound event payload is not a well-formed FrameBatch."""
    pass


class QueryRejected(TimelineAgentError):
    """Raised when a query fails its preconditions. Nothing has been mutated."""
    pass
