"""Utilities for simplifying async operations.

This subpackage contains the general purpose asyncio helpers that the rest of
blegatt is built on: a background event loop for blocking callers and a
message router for fanning transport events out to waiting coroutines.
"""

from .event_loop import BackgroundEventLoop, SharedLoop, LoopStoppingError
from .operation_manager import OperationManager, MessageSpec

__all__ = ['BackgroundEventLoop', 'SharedLoop', 'LoopStoppingError', 'OperationManager', 'MessageSpec']
