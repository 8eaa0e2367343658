"""Tests for the lazy task source."""

import unittest

from poolfetch.models import AttemptOutcome
from poolfetch.tasks import iter_tasks


class RecordingTransport:
    """Stand-in transport that remembers every item it was asked to fetch."""

    def __init__(self):
        self.calls = []

    def attempt(self, item, cancelled=None):
        self.calls.append(item)
        return AttemptOutcome.success(200, len(item))


class TestIterTasks(unittest.TestCase):
    """Verify ordering, laziness and re-invocation of task closures."""

    def test_yields_tasks_in_input_order(self):
        """Tasks carry the items and their positions in input order."""
        tasks = list(iter_tasks(["a", "b", "c"], RecordingTransport()))
        self.assertEqual([t.item for t in tasks], ["a", "b", "c"])
        self.assertEqual([t.index for t in tasks], [0, 1, 2])

    def test_is_lazy(self):
        """Items are pulled from the input only as tasks are requested."""
        pulled = []

        def items():
            for url in ("a", "b", "c"):
                pulled.append(url)
                yield url

        source = iter_tasks(items(), RecordingTransport())
        self.assertEqual(pulled, [])
        next(source)
        self.assertEqual(pulled, ["a"])

    def test_no_request_until_attempt(self):
        """Building tasks must not touch the network."""
        transport = RecordingTransport()
        list(iter_tasks(["a", "b"], transport))
        self.assertEqual(transport.calls, [])

    def test_closure_can_be_invoked_repeatedly(self):
        """Each call issues a fresh attempt for the task's own item."""
        transport = RecordingTransport()
        first, second = iter_tasks(["a", "bb"], transport)
        first.attempt()
        first.attempt()
        second.attempt()
        self.assertEqual(transport.calls, ["a", "a", "bb"])

    def test_is_not_restartable(self):
        """A consumed source yields nothing on a second pass."""
        source = iter_tasks(["a"], RecordingTransport())
        self.assertEqual(len(list(source)), 1)
        self.assertEqual(list(source), [])


if __name__ == "__main__":
    unittest.main()
