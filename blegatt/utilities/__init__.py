"""General utilities that are not specific to bluetooth."""

from .async_tools import BackgroundEventLoop, SharedLoop, OperationManager

__all__ = ['BackgroundEventLoop', 'SharedLoop', 'OperationManager']
