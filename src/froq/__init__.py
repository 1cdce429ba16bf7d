"""Froq synchronous web application kernel."""

from .admission import AdmissionGate, AdmissionPolicy, Pass, Reject
from .application import App
from .buffering import OutputBuffer
from .config import AppConfig, LoggerConfig, SecurityConfig
from .controllers import Controller, DefaultController, RequestContext
from .dispatch import Dispatcher, PipelineState
from .events import Events
from .exceptions import FroqError, HTTPError, ResponseAlreadySent
from .http import Status
from .logger import AppLogger
from .requests import Request
from .responses import Response, ResponseState
from .routing import ActionNotAllowed, ResolvedHandler, RouteNotFound, Router, delete, get, post, put, route
from .servicer import Servicer
from .testing import TestClient

__all__ = [
    "ActionNotAllowed",
    "AdmissionGate",
    "AdmissionPolicy",
    "App",
    "AppConfig",
    "AppLogger",
    "Controller",
    "DefaultController",
    "Dispatcher",
    "Events",
    "FroqError",
    "HTTPError",
    "LoggerConfig",
    "OutputBuffer",
    "Pass",
    "PipelineState",
    "Reject",
    "Request",
    "RequestContext",
    "ResolvedHandler",
    "Response",
    "ResponseAlreadySent",
    "ResponseState",
    "RouteNotFound",
    "Router",
    "SecurityConfig",
    "Servicer",
    "Status",
    "TestClient",
    "delete",
    "get",
    "post",
    "put",
    "route",
]
