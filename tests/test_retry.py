"""Tests for RetryPolicy and run_with_retry."""

import asyncio
import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from src.relay.retry import RetryPolicy, run_with_retry


class TestRetryPolicy(unittest.TestCase):

    def test_delays_exponential_and_capped(self):
        policy = RetryPolicy(max_attempts=5, base_delay=1.0, factor=2.0, max_delay=5.0)
        self.assertEqual(list(policy.delays()), [1.0, 2.0, 4.0, 5.0])

    def test_single_attempt_has_no_delays(self):
        self.assertEqual(list(RetryPolicy(max_attempts=1).delays()), [])
        self.assertEqual(list(RetryPolicy(max_attempts=0).delays()), [])

    def test_retries_until_success(self):
        attempts = []

        async def op():
            attempts.append(1)
            if len(attempts) < 3:
                raise ConnectionError("flaky")
            return "ok"

        result = asyncio.run(
            run_with_retry(op, RetryPolicy(max_attempts=4, base_delay=0.0), lambda e: isinstance(e, ConnectionError))
        )
        self.assertEqual(result, "ok")
        self.assertEqual(len(attempts), 3)

    def test_non_retryable_raises_immediately(self):
        attempts = []

        async def op():
            attempts.append(1)
            raise ValueError("bad input")

        with self.assertRaises(ValueError):
            asyncio.run(run_with_retry(op, RetryPolicy(max_attempts=5, base_delay=0.0), lambda e: False))
        self.assertEqual(len(attempts), 1)

    def test_exhausted_reraises_last_error(self):
        async def op():
            raise ConnectionError("down")

        with self.assertRaises(ConnectionError):
            asyncio.run(run_with_retry(op, RetryPolicy(max_attempts=2, base_delay=0.0), lambda e: True))

    def test_cancellation_during_backoff(self):
        async def op():
            raise ConnectionError("down")

        async def run():
            task = asyncio.create_task(
                run_with_retry(op, RetryPolicy(max_attempts=3, base_delay=10.0), lambda e: True)
            )
            await asyncio.sleep(0.05)
            task.cancel()
            with self.assertRaises(asyncio.CancelledError):
                await task

        asyncio.run(run())


if __name__ == "__main__":
    unittest.main()
