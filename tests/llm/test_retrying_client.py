import threading
import unittest

from commit_weaver.llm.claude_client import LLMError, LLMHTTPError
from commit_weaver.llm.retry import RetryCancelled, RetryingClient, RetryPolicy, is_retryable


class ScriptedClient:
    """Raise or return the scripted outcomes in order."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    def generate(self, system, prompt):
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class TestRetryPolicy(unittest.TestCase):
    def test_delays_double_and_cap(self) -> None:
        policy = RetryPolicy(max_attempts=10, base_delay_ms=1000, max_delay_ms=30000)
        self.assertEqual([policy.delay_ms(n) for n in range(1, 7)], [1000, 2000, 4000, 8000, 16000, 30000])

    def test_retryable_errors(self) -> None:
        self.assertTrue(is_retryable(LLMHTTPError(429)))
        self.assertTrue(is_retryable(LLMHTTPError(503)))
        self.assertTrue(is_retryable(LLMError("timeout")))
        self.assertFalse(is_retryable(LLMHTTPError(401)))
        self.assertFalse(is_retryable(LLMHTTPError(400)))
        self.assertFalse(is_retryable(RetryCancelled("stop")))


class TestRetryingClient(unittest.TestCase):
    def setUp(self) -> None:
        self.sleeps = []

    def test_rate_limits_then_success(self) -> None:
        client = ScriptedClient([LLMHTTPError(429), LLMHTTPError(429), "ok"])
        retrying = RetryingClient(client, sleep=self.sleeps.append)
        self.assertEqual(retrying.generate("s", "p"), "ok")
        self.assertEqual(client.calls, 3)
        self.assertEqual(self.sleeps, [1.0, 2.0])

    def test_client_error_fails_immediately(self) -> None:
        client = ScriptedClient([LLMHTTPError(401, "bad key")])
        retrying = RetryingClient(client, sleep=self.sleeps.append)
        with self.assertRaises(LLMHTTPError):
            retrying.generate("s", "p")
        self.assertEqual(client.calls, 1)
        self.assertEqual(self.sleeps, [])

    def test_exhausted_attempts(self) -> None:
        client = ScriptedClient([LLMHTTPError(500)] * 4)
        retrying = RetryingClient(client, sleep=self.sleeps.append)
        with self.assertRaises(LLMError) as ctx:
            retrying.generate("s", "p")
        self.assertIn("Failed after 4 attempts", str(ctx.exception))
        self.assertEqual(client.calls, 4)
        self.assertEqual(self.sleeps, [1.0, 2.0, 4.0])

    def test_zero_delay_policy(self) -> None:
        client = ScriptedClient([LLMError("reset"), "ok"])
        retrying = RetryingClient(client, RetryPolicy(max_attempts=2, base_delay_ms=0), sleep=self.sleeps.append)
        self.assertEqual(retrying.generate("s", "p"), "ok")
        self.assertEqual(self.sleeps, [0.0])

    def test_cancel_during_backoff(self) -> None:
        cancel = threading.Event()
        cancel.set()
        client = ScriptedClient([LLMHTTPError(503), "never"])
        retrying = RetryingClient(client, RetryPolicy(base_delay_ms=10), cancel_event=cancel)
        with self.assertRaises(RetryCancelled):
            retrying.generate("s", "p")
        self.assertEqual(client.calls, 1)


if __name__ == "__main__":
    unittest.main()
