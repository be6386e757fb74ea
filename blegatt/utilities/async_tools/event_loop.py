"""A background asyncio event loop for driving the GATT engine from blocking code.

The core of blegatt is written entirely as coroutines.  Scripts, test suites
and other blocking callers need a way to run those coroutines without owning
an event loop themselves, so this module provides ``BackgroundEventLoop``: an
asyncio loop running forever in a daemon thread that coroutines can be
submitted to from any other thread.

There is a single global instance, ``SharedLoop``, that is stopped
automatically at interpreter exit.  Tests should create their own instance so
that they are isolated from each other.
"""

import asyncio
import inspect
import logging
import threading
import atexit
from typedargs.exceptions import ArgumentError, InternalError


class LoopStoppingError(InternalError):
    """An operation was requested on a BackgroundEventLoop that is shutting down."""


class BackgroundEventLoop:
    """A shared asyncio event loop running in a background thread.

    The background thread is created the first time a request is made that
    requires a loop so it is cheap to create a BackgroundEventLoop and not use
    it.

    A background event loop cannot be restarted once it stops.  Once
    ``stop()`` is called no more coroutines can be submitted and attempts to
    do so raise LoopStoppingError.
    """

    def __init__(self):
        self.loop = None
        self.thread = None
        self.stopping = False

        self._logger = logging.getLogger(__name__)
        self._loop_check = threading.local()
        self._started = threading.Lock()

    def start(self, name='BLEEventLoopThread'):
        """Ensure the background loop is running.

        This method is safe to call multiple times.  If the loop is already
        running, it will not do anything.
        """

        if self.stopping:
            raise LoopStoppingError("Cannot perform action while loop is stopping.")

        with self._started:
            if self.loop is not None:
                return

            self._logger.debug("Starting event loop")
            self.loop = asyncio.new_event_loop()
            self.thread = threading.Thread(target=self._loop_thread_main, name=name, daemon=True)
            self.thread.start()

    def stop(self):
        """Synchronously stop the background loop from outside.

        All tasks still pending on the loop are cancelled and awaited before
        the loop is closed.  This method blocks until the loop thread exits so
        it cannot be called from inside the loop itself.  It is safe to call
        multiple times.
        """

        if self.loop is None:
            return

        if self.inside_loop():
            raise InternalError("BackgroundEventLoop.stop() called from inside event loop; "
                                "would have deadlocked.")

        try:
            future = asyncio.run_coroutine_threadsafe(self._stop_internal(), self.loop)
            future.result()
            self.thread.join()
        except:
            self._logger.exception("Error stopping BackgroundEventLoop")
            raise
        finally:
            self.thread = None
            self.loop = None

    def get_loop(self):
        """Get the underlying asyncio loop, starting it if needed."""

        if self.loop is None:
            self.start()

        return self.loop

    def inside_loop(self):
        """Check if we are running inside the event loop thread.

        Returns:
            bool: True if we are running inside the loop thread.
        """

        return self._loop_check.__dict__.get('inside_loop', False)

    def run_coroutine(self, cor, *args, **kwargs):
        """Run a coroutine to completion and return its result.

        This method may only be called outside of the event loop.  Calling it
        from inside the loop would deadlock and raises InternalError instead.

        Args:
            cor (coroutine or coroutine function): The coroutine to run.  If a
                coroutine function is passed, it is called with ``args`` and
                ``kwargs`` to create the coroutine.

        Returns:
            object: Whatever the coroutine returns.
        """

        if self.stopping:
            raise LoopStoppingError("Could not launch coroutine because loop is shutting down: %s" % cor)

        cor = _instantiate_coroutine(cor, args, kwargs)

        if self.inside_loop():
            cor.close()
            raise InternalError("BackgroundEventLoop.run_coroutine called from inside event loop, "
                                "would have deadlocked.")

        future = self.launch_coroutine(cor)
        return future.result()

    def launch_coroutine(self, cor, *args, **kwargs):
        """Start a coroutine and return a blockable or awaitable object.

        From inside the loop an asyncio.Task is returned.  From any other
        thread a concurrent.futures.Future is returned whose ``result()``
        blocks the calling thread.
        """

        if self.stopping:
            raise LoopStoppingError("Could not launch coroutine because loop is shutting down: %s" % cor)

        self.start()
        cor = _instantiate_coroutine(cor, args, kwargs)

        if self.inside_loop():
            return asyncio.ensure_future(cor)

        return asyncio.run_coroutine_threadsafe(cor, self.loop)

    async def _stop_internal(self):
        """Cancel every outstanding task and then stop the loop."""

        if self.stopping:
            return

        self.stopping = True

        current = asyncio.current_task()
        pending = [task for task in asyncio.all_tasks() if task is not current]
        for task in pending:
            task.cancel()

        results = await asyncio.gather(*pending, return_exceptions=True)
        for task, result in zip(pending, results):
            if isinstance(result, Exception):
                self._logger.error("Error stopping task %s: %r", task, result)

        # Defer by one loop cycle so that this coroutine is finalized and
        # the thread blocked in stop() resumes.
        self.loop.call_soon(self.loop.stop)

    def _loop_thread_main(self):
        asyncio.set_event_loop(self.loop)
        self._loop_check.inside_loop = True

        try:
            self._logger.debug("Starting loop in background thread")
            self.loop.run_forever()
            self._logger.debug("Finished loop in background thread")
        except:  # pylint:disable=bare-except;This is a background worker thread.
            self._logger.exception("Exception raised from event loop thread")
        finally:
            self.loop.close()


def _instantiate_coroutine(cor, args, kwargs):
    if inspect.iscoroutinefunction(cor):
        cor = cor(*args, **kwargs)
    elif len(args) > 0 or len(kwargs) > 0:
        raise ArgumentError("You cannot pass arguments if coroutine is already created", args=args, kwargs=kwargs)

    return cor


SharedLoop = BackgroundEventLoop()  # pylint:disable=invalid-name
atexit.register(SharedLoop.stop)
