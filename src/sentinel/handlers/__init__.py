"""
Integration handlers for the Sentinel coordinator
"""

from . import http_handler, predict, publish
from .base import (
    BaseHandler,
    HandlerFactory,
    SpeedOptions,
    classify_failure,
    should_retry,
)
from .http_handler import HttpHandler
from .predict import PredictHandler
from .publish import PublishHandler

__all__ = [
    "BaseHandler",
    "HandlerFactory",
    "HttpHandler",
    "PredictHandler",
    "PublishHandler",
    "SpeedOptions",
    "classify_failure",
    "http_handler",
    "predict",
    "publish",
    "should_retry",
]
