"""HTTP server and route table."""

from inbox_agent.server.http import HttpServer, Request, Response, Route, Router, json_response, text_response
from inbox_agent.server.routes import build_router

__all__ = [
    "HttpServer",
    "Request",
    "Response",
    "Route",
    "Router",
    "build_router",
    "json_response",
    "text_response",
]
