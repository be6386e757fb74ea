"""Message driven dispatch of bluetooth events.

Every transport delivers all of its events (advertisements, link losses,
notifications) over a single channel even though they are logically
multiplexed across many scanners, connections and characteristics.  The
OperationManager lets many independent coroutines share that channel: each one
either blocks until a message with specific field values arrives, using
``wait_for()``, or registers a persistent callback with ``every_match()``.

Messages are either dictionaries or objects with attributes; matching is by
equality on any of their keys, so ``every_match(cb, event="value_changed",
link=3)`` only sees notifications for link 3.
"""

import asyncio
import inspect
import logging
from collections import deque
from typedargs.exceptions import ArgumentError


class MessageSpec:
    """The set of key/value pairs a message must contain to match."""

    __slots__ = ['fields']

    def __init__(self, **kwargs):
        self.fields = kwargs


class OperationManager:
    """Route incoming messages to the coroutines and callbacks waiting for them.

    Messages are passed in with ``process_message()`` when already inside the
    event loop or queued with ``queue_message_threadsafe()`` from transport
    callbacks, which may run on any thread once ``attach()`` has been called.
    Queued messages are dispatched strictly in the order they were queued.

    Args:
        loop (asyncio.AbstractEventLoop): Optional loop used when messages are
            queued from foreign threads.  If not given, the loop is captured
            the first time a message is queued from inside a running loop.
    """

    _LEAF = object()

    def __init__(self, loop=None):
        self._waiters = {}
        self._loop = loop
        self._logger = logging.getLogger(__name__)
        self._messages = deque()
        self._dispatch_lock = None
        self._process_pending = False

    def attach(self, loop):
        """Bind this manager to the loop that dispatches its messages."""

        self._loop = loop

    def _add_waiter(self, spec, responder=None):
        loc = self._waiters
        for key, value in sorted(spec.fields.items()):
            loc = loc.setdefault(key, {})
            loc = loc.setdefault(value, {})

        if responder is None:
            responder = asyncio.get_running_loop().create_future()

        loc.setdefault(OperationManager._LEAF, set()).add(responder)
        return responder

    def _remove_waiter(self, spec, responder):
        loc = self._waiters
        parents = []

        for key, value in sorted(spec.fields.items()):
            parents.append((loc, key))
            loc = loc.get(key)
            if loc is None:
                return

            parents.append((loc, value))
            loc = loc.get(value)
            if loc is None:
                return

        responders = loc.get(OperationManager._LEAF)
        if responders is None or responder not in responders:
            return

        responders.remove(responder)
        if len(responders) > 0:
            return

        del loc[OperationManager._LEAF]

        # Prune now empty branches so the tree doesn't grow without bound
        for parent, key in reversed(parents):
            if len(parent[key]) > 0:
                return

            del parent[key]

    def waiters(self, path=None):
        """Iterate over all waiters as (matched key path, future or callback) tuples."""

        context = self._waiters

        if path is None:
            path = []

        for key in path:
            context = context[key]

        if self._LEAF in context:
            for responder in context[self._LEAF]:
                yield (path, responder)

        for key in context:
            if key is self._LEAF:
                continue

            yield from self.waiters(path=path + [key])

    def every_match(self, callback, **kwargs):
        """Invoke callback every time a matching message is received.

        The callback may be a plain function or a coroutine function.  Either
        way it has finished running by the time ``process_message`` returns.

        Returns:
            object: An opaque handle to pass to ``remove_waiter()``.
        """

        if len(kwargs) == 0:
            raise ArgumentError("You must specify at least one message field to wait on")

        spec = MessageSpec(**kwargs)
        responder = self._add_waiter(spec, callback)

        return (spec, responder)

    def remove_waiter(self, waiter_handle):
        """Remove a callback previously registered with every_match()."""

        spec, waiter = waiter_handle
        self._remove_waiter(spec, waiter)

    def clear(self):
        """Remove all waiters, cancelling any pending ``wait_for`` futures."""

        for _, waiter in self.waiters():
            if isinstance(waiter, asyncio.Future) and not waiter.done():
                waiter.cancel()

        self._waiters = {}

    def wait_for(self, timeout=None, **kwargs):
        """Wait for the next message matching all of the given key/values.

        The waiter is registered synchronously when this method is called, so
        a message processed between this call and awaiting the result is not
        lost.  This method must be called from inside the event loop.

        Returns:
            awaitable: Resolves to the matching message or raises
            asyncio.TimeoutError.
        """

        if len(kwargs) == 0:
            raise ArgumentError("You must specify at least one message field to wait on")

        spec = MessageSpec(**kwargs)
        future = self._add_waiter(spec)
        future.add_done_callback(lambda x: self._remove_waiter(spec, future))

        return asyncio.wait_for(future, timeout=timeout)

    async def process_message(self, message, wait=True):
        """Check a message against all waiters and wake the ones it matches.

        All coroutine callbacks triggered by this message have run to
        completion by the time this method returns unless ``wait`` is False.
        Exceptions raised by callbacks are logged, never propagated.

        Returns:
            bool: True if at least one waiter matched, otherwise False.
        """

        to_check = deque([self._waiters])
        ignored = True
        processors = []

        while len(to_check) > 0:
            context = to_check.popleft()

            for waiter in list(context.get(OperationManager._LEAF, [])):
                if isinstance(waiter, asyncio.Future):
                    if not waiter.done():
                        waiter.set_result(message)
                else:
                    proc = self._launch(waiter, message, wait)
                    if proc is not None:
                        processors.append(proc)

                ignored = False

            for key in list(context):
                if key is OperationManager._LEAF:
                    continue

                message_val = _get_key(message, key)
                if message_val is _MISSING:
                    continue

                next_level = context[key]
                if message_val in next_level:
                    to_check.append(next_level[message_val])

        if len(processors) > 0:
            results = await asyncio.gather(*processors, return_exceptions=True)
            for proc, result in zip(processors, results):
                if isinstance(result, Exception):
                    self._logger.error("Error running processor %s: %r", proc, result)

        return not ignored

    async def process_all(self):
        """Drain the queue of messages, dispatching them one at a time in order."""

        self._process_pending = False

        if self._dispatch_lock is None:
            self._dispatch_lock = asyncio.Lock()

        async with self._dispatch_lock:
            while len(self._messages) > 0:
                current = self._messages.popleft()
                await self.process_message(current)

    def queue_message_threadsafe(self, message):
        """Queue a message for in-order processing from any thread."""

        loop = self._loop
        if loop is not None and not _running_in(loop):
            loop.call_soon_threadsafe(self._queue_message, message)
            return

        if loop is None:
            self._loop = asyncio.get_running_loop()

        self._queue_message(message)

    def _queue_message(self, message):
        self._messages.append(message)
        if not self._process_pending:
            self._process_pending = True
            self._loop.create_task(self.process_all())

    def _launch(self, callback, message, wait):
        try:
            result = callback(message)
        except Exception:  #pylint:disable=broad-except;Callbacks must not break dispatch, errors are logged
            self._logger.exception("Error running callback %s", callback)
            return None

        if inspect.isawaitable(result):
            if wait:
                return result

            asyncio.ensure_future(result)

        return None


_MISSING = object()


def _get_key(obj, key, default=_MISSING):
    if isinstance(obj, dict):
        return obj.get(key, default)

    return getattr(obj, key, default)


def _running_in(loop):
    try:
        return asyncio.get_running_loop() is loop
    except RuntimeError:
        return False
