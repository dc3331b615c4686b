"""Middleware package — request ID propagation and error handling."""

from bgg_picker.middleware.error_handler import (
    AllEndpointsExhaustedError,
    AllEndpointsUnhealthyError,
    BGGApiError,
    CollectionNotFoundError,
    CollectionProcessingError,
    EmptyCollectionError,
    EndpointRequestError,
    PickerError,
    ValidationError,
    register_error_handlers,
)
from bgg_picker.middleware.request_id import RequestIdMiddleware

__all__ = [
    "AllEndpointsExhaustedError",
    "AllEndpointsUnhealthyError",
    "BGGApiError",
    "CollectionNotFoundError",
    "CollectionProcessingError",
    "EmptyCollectionError",
    "EndpointRequestError",
    "PickerError",
    "RequestIdMiddleware",
    "ValidationError",
    "register_error_handlers",
]
