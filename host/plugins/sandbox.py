"""Sandboxed invocation of plugin lifecycle methods.

Every call is bounded by a deadline and yields exactly one outcome: the
method's return value, or a SandboxError tagged NOT_FOUND, TIMEOUT or THREW.

Plugin code never runs on the host event loop. Each call gets its own daemon
thread; coroutine methods run there on a private event loop. When the deadline
expires the host stops waiting and cancels that loop's tasks, but cannot stop
the thread itself: a plugin stuck in a tight loop keeps burning CPU until it
returns.
"""

import asyncio
import inspect
import logging
import threading
from typing import Any, Callable, Dict, Optional

from host.constants import PLUGIN_CALL_TIMEOUT
from host.errors import SandboxError, SandboxErrorKind
from host.plugins.registry import ModuleHandle

logger = logging.getLogger(__name__)

# Loop timers may fire slightly before the deadline they were scheduled for
_DEADLINE_SLACK = 0.05


def _settle(future: asyncio.Future, result: Any = None, error: Optional[BaseException] = None) -> None:
    # The waiter may already have given up (timeout) and cancelled the future
    if future.done():
        return
    if error is not None:
        future.set_exception(error)
    else:
        future.set_result(result)


def _run_awaitable(awaitable: Any, worker: Dict[str, asyncio.AbstractEventLoop]) -> Any:
    """Drive an awaitable to completion on a fresh event loop owned by the calling thread."""
    loop = asyncio.new_event_loop()
    worker["loop"] = loop
    try:
        return loop.run_until_complete(awaitable)
    finally:
        try:
            loop.run_until_complete(loop.shutdown_asyncgens())
        finally:
            loop.close()


def _cancel_worker(worker: Dict[str, asyncio.AbstractEventLoop]) -> None:
    loop = worker.get("loop")
    if loop is None:
        return

    def cancel_all():
        for task in asyncio.all_tasks(loop):
            task.cancel()

    try:
        loop.call_soon_threadsafe(cancel_all)
    except RuntimeError:
        # Worker loop already closed
        pass


class SandboxedInvoker:
    """Runs plugin methods with a deadline and converts every failure to SandboxError."""

    def __init__(self, timeout: float = PLUGIN_CALL_TIMEOUT):
        self.timeout = timeout

    async def invoke(
        self,
        plugin_name: str,
        module_handle: ModuleHandle,
        method_name: str,
        *args: Any,
        timeout: Optional[float] = None,
    ) -> Any:
        """Call ``method_name`` on a plugin module.

        The module body is executed on first use, inside the same deadline.

        Args:
            plugin_name: Plugin name, for error tagging and logs
            module_handle: Loaded entry module of the plugin
            method_name: Module-level function to call (e.g. "init")
            *args: Arguments passed to the method
            timeout: Override for the default deadline (seconds)

        Returns:
            Whatever the plugin method returned (awaitables are awaited)

        Raises:
            SandboxError: NOT_FOUND, TIMEOUT or THREW
        """
        deadline = self.timeout if timeout is None else timeout
        loop = asyncio.get_running_loop()
        started = loop.time()

        def remaining() -> float:
            return max(0.0, deadline - (loop.time() - started))

        if not module_handle.executed and method_name not in module_handle.exports:
            raise self._fail(plugin_name, method_name, SandboxErrorKind.NOT_FOUND, f"Method {method_name} not found in plugin")

        try:
            module = await self._run_in_thread(plugin_name, "<module>", module_handle.materialize, (), remaining())
            method = inspect.getattr_static(module, method_name, None)
            if method is None or not callable(method):
                raise self._fail(
                    plugin_name, method_name, SandboxErrorKind.NOT_FOUND, f"Method {method_name} not found in plugin"
                )
            return await self._run_in_thread(plugin_name, method_name, method, args, remaining())

        except SandboxError:
            raise
        except asyncio.TimeoutError as e:
            # A TimeoutError raised by the plugin itself, before the deadline, is just an error
            if remaining() > _DEADLINE_SLACK:
                raise self._fail(plugin_name, method_name, SandboxErrorKind.THREW, f"{type(e).__name__}: {e}", e) from e
            raise self._fail(
                plugin_name, method_name, SandboxErrorKind.TIMEOUT, f"timed out after {deadline:g}s", e
            ) from None
        except Exception as e:
            raise self._fail(plugin_name, method_name, SandboxErrorKind.THREW, f"{type(e).__name__}: {e}", e) from e

    async def _run_in_thread(
        self,
        plugin_name: str,
        label: str,
        fn: Callable,
        args: tuple,
        timeout: float,
    ) -> Any:
        """Run a plugin callable on a dedicated daemon thread and await its outcome.

        If the callable returns an awaitable (coroutine functions do), it is
        driven on a private event loop in the same thread, never on the host loop.
        """
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        worker: Dict[str, asyncio.AbstractEventLoop] = {}

        def runner():
            try:
                result = fn(*args)
                if inspect.isawaitable(result):
                    result = _run_awaitable(result, worker)
            except BaseException as e:  # plugin may raise SystemExit and friends
                outcome = (None, e if isinstance(e, Exception) else RuntimeError(repr(e)))
            else:
                outcome = (result, None)
            try:
                loop.call_soon_threadsafe(_settle, future, *outcome)
            except RuntimeError:
                # Host loop closed while this abandoned call was still running
                logger.debug(f"Discarding late result of {plugin_name}.{label}()")

        thread = threading.Thread(target=runner, name=f"plugin-{plugin_name}-{label}", daemon=True)
        thread.start()
        try:
            return await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            _cancel_worker(worker)
            raise

    def _fail(
        self,
        plugin_name: str,
        method_name: str,
        kind: SandboxErrorKind,
        message: str,
        cause: Optional[BaseException] = None,
    ) -> SandboxError:
        error = SandboxError(plugin_name, method_name, kind, message, cause)
        if kind == SandboxErrorKind.NOT_FOUND:
            logger.warning(f"[{plugin_name}] {error}")
        else:
            logger.error(f"[{plugin_name}] {error}")
        return error
