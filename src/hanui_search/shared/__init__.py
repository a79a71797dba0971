"""
Shared utilities for Hanui Search.

Provides:
- Unified exception hierarchy
- Circuit breaker for backend calls
- Text/XML normalization
"""

from .async_utils import CircuitBreaker
from .exceptions import (
    AdapterTransportError,
    AggregationError,
    APIError,
    ConfigurationError,
    DataError,
    ErrorCategory,
    ErrorContext,
    ErrorSeverity,
    ExpansionError,
    HanuiSearchError,
    InvalidParameterError,
    InvalidQueryError,
    NetworkError,
    NotFoundError,
    ParseError,
    RateLimitError,
    ServiceUnavailableError,
    ValidationError,
    get_retry_delay,
    is_retryable_error,
)
from .text import ElementNode, Node, TextNode, clean_text, decode_entities, first_text, flatten, parse_xml

__all__ = [
    # Exceptions
    "HanuiSearchError",
    "APIError",
    "RateLimitError",
    "NetworkError",
    "ServiceUnavailableError",
    "ValidationError",
    "InvalidQueryError",
    "InvalidParameterError",
    "DataError",
    "NotFoundError",
    "ParseError",
    "ExpansionError",
    "AdapterTransportError",
    "AggregationError",
    "ConfigurationError",
    "ErrorContext",
    "ErrorSeverity",
    "ErrorCategory",
    "is_retryable_error",
    "get_retry_delay",
    # Fault tolerance
    "CircuitBreaker",
    # Text
    "Node",
    "TextNode",
    "ElementNode",
    "parse_xml",
    "flatten",
    "first_text",
    "decode_entities",
    "clean_text",
]
