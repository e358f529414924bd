"""Event handler normalization."""

from shopflow.handlers.adapter import HandlerAdapter, get_handler_name

__all__ = ["HandlerAdapter", "get_handler_name"]
