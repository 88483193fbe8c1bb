"""Console progress markers for long waits: a label, one dot per attempt, then 'done'."""

import contextlib
import sys


class ProgressIndicator:
    """Writes progress markers to a stream.

    The stream is resolved on every write so that a replaced ``sys.stdout``
    (e.g. under pytest's capsys) is honoured.
    """

    def __init__(self, stream=None):
        self._stream = stream

    @property
    def stream(self):
        return self._stream or sys.stdout

    def _write(self, text):
        self.stream.write(text)
        self.stream.flush()

    @contextlib.contextmanager
    def wait(self, label=None):
        """Scope one wait: writes *label* on entry and ``done`` on every exit path."""
        if label:
            self._write(label)
        try:
            yield self
        finally:
            self._write("done\n")

    def tick(self):
        self._write(".")


class NullProgress(ProgressIndicator):
    """Progress indicator that writes nothing."""

    def _write(self, text):
        pass
