"""
Background threads used by the transport.

AsyncLoop runs a template method repeatedly on a daemon thread.
SerialExecutor builds on it to run submitted commands one at a time, in submission order, on that one
thread. All mutable transport state is owned by a SerialExecutor.
"""
import logging
import threading
import time
from concurrent.futures import CancelledError, Future
from queue import Empty, Queue

logger = logging.getLogger(__name__)


class AsyncLoop:
    """ Continually runs a given function on a background thread.
        Exceptions are logged and posted to a given handler
        The background thread is registered as a daemon.
    """

    def __init__(self, fn=None, args=(), name=None, log=logger):
        """
        :param fn the function to run
        :param args arguments to pass to fn
        :param name the name given to the background thread
        """
        self.fn = fn
        self.args = args
        self.name = name
        self.stop_event = threading.Event()
        self.background_thread = None
        self.logger = log
        self._start_lock = threading.Lock()

    def start(self):
        """
        Starts the background thread, unless it is already running or the loop has been stopped.
        """
        with self._start_lock:
            if self.background_thread is None and self.running():
                t = threading.Thread(target=self._run, name=self.name, daemon=True)
                self.background_thread = t
                t.start()

    def exception_handler(self, e):
        self.logger.exception(e)

    def _run(self):
        """ The processing loop for the background thread.
             Invokes the callable for as long as the stop signal is not received.
        """
        self._do(self.startup)
        while self.running():
            self._do(self.loop)
        self._do(self.shutdown)
        self.logger.debug("background thread %s exiting" % self.name)

    def _do(self, callme):
        """ runs a function and captures any exceptions """
        try:
            callme()
        except Exception as e:
            time.sleep(0)
            self.exception_handler(e)

    def startup(self):
        """ template method called when the thread starts"""
        pass

    def loop(self):
        self.fn(*self.args)

    def shutdown(self):
        """ template method called when the thread exits """
        pass

    def running(self):
        return not self.stop_event.is_set()

    def on_background_thread(self):
        return self.background_thread is threading.current_thread()

    def stop(self):
        event = self.stop_event
        event.set()
        with self._start_lock:
            thread = self.background_thread
            self.background_thread = None
        if thread and thread is not threading.current_thread():
            thread.join()


class SerialExecutor(AsyncLoop):
    """
    Runs commands strictly in the order they were submitted, one at a time, on a single background thread.

    submit() is fire-and-forget. call() waits for the command to complete and returns its result.
    A command that raises is logged and its result is None; the exception is not passed to the caller.
    Commands submitted from the background thread itself by call() are run immediately, inline.

    The thread is started on the first submission. Once stopped, the executor drops further commands.
    """

    def __init__(self, name='debuglink-worker', poll_interval=0.1, log=logger):
        """
        :param poll_interval how long, in seconds, the thread waits for a command before checking if it was stopped
        """
        super().__init__(name=name, log=log)
        self.poll_interval = poll_interval
        self.commands = Queue()

    def submit(self, fn, *args, **kwargs) -> Future:
        future = Future()
        if not self.running():
            self.logger.debug("executor stopped, dropping %s" % _describe(fn))
            future.cancel()
            return future
        self.commands.put((future, fn, args, kwargs))
        self.start()
        return future

    def call(self, fn, *args, **kwargs):
        if self.on_background_thread():
            future = Future()
            self._execute(future, fn, args, kwargs)
        else:
            future = self.submit(fn, *args, **kwargs)
        try:
            return future.result()
        except CancelledError:
            return None

    def loop(self):
        try:
            command = self.commands.get(timeout=self.poll_interval)
        except Empty:
            return
        self._execute(*command)

    def _execute(self, future, fn, args, kwargs):
        if not future.set_running_or_notify_cancel():
            return
        try:
            result = fn(*args, **kwargs)
        except Exception:
            self.logger.exception("unexpected exception running %s" % _describe(fn))
            result = None
        future.set_result(result)

    def shutdown(self):
        """ cancels commands still queued when the executor stops, so no caller is left waiting. """
        while True:
            try:
                future, fn, args, kwargs = self.commands.get_nowait()
            except Empty:
                break
            future.cancel()

    def stop(self):
        super().stop()
        self.shutdown()


def _describe(fn):
    return getattr(fn, '__qualname__', None) or repr(fn)
