import os
from unittest import TestCase
from unittest.mock import patch

from gateway.backend.services import admission_service
from gateway.backend.services.admission_service import SlidingWindowLimiter


class _Clock:
	def __init__(self, now: float = 1000.0) -> None:
		self.now = now

	def __call__(self) -> float:
		return self.now

	def advance(self, seconds: float) -> None:
		self.now += seconds


class SlidingWindowLimiterTests(TestCase):
	def setUp(self) -> None:
		self.clock = _Clock()
		self.limiter = SlidingWindowLimiter(quota=5, window=60.0, clock=self.clock)

	def test_quota_then_rejection_then_recovery_after_window(self) -> None:
		results = [self.limiter.allow("10.0.0.1") for _ in range(5)]
		self.assertEqual(results, [True] * 5)
		self.assertFalse(self.limiter.allow("10.0.0.1"))

		self.clock.advance(59.9)
		self.assertFalse(self.limiter.allow("10.0.0.1"))

		self.clock.advance(0.2)
		self.assertTrue(self.limiter.allow("10.0.0.1"))

	def test_rejected_calls_are_not_recorded(self) -> None:
		for _ in range(5):
			self.limiter.allow("client")
		for _ in range(10):
			self.assertFalse(self.limiter.allow("client"))
		self.clock.advance(60.0)
		self.assertEqual(self.limiter.remaining("client"), 5)

	def test_window_slides_from_earliest_timestamp(self) -> None:
		self.limiter.allow("client")
		self.clock.advance(30.0)
		for _ in range(4):
			self.assertTrue(self.limiter.allow("client"))
		self.assertFalse(self.limiter.allow("client"))

		# Only the first timestamp has expired.
		self.clock.advance(30.0)
		self.assertTrue(self.limiter.allow("client"))
		self.assertFalse(self.limiter.allow("client"))

	def test_clients_are_counted_independently(self) -> None:
		for _ in range(5):
			self.assertTrue(self.limiter.allow("a"))
		self.assertFalse(self.limiter.allow("a"))
		self.assertTrue(self.limiter.allow("b"))
		self.assertEqual(self.limiter.remaining("b"), 4)
		self.assertEqual(self.limiter.remaining("never-seen"), 5)

	def test_sweep_drops_only_clients_with_empty_windows(self) -> None:
		self.limiter.allow("old")
		self.clock.advance(45.0)
		self.limiter.allow("recent")
		self.clock.advance(20.0)

		self.assertEqual(self.limiter.sweep(), 1)
		self.assertEqual(self.limiter.tracked_clients(), 1)
		self.assertEqual(self.limiter.remaining("recent"), 4)

	def test_rejects_invalid_configuration(self) -> None:
		with self.assertRaises(ValueError):
			SlidingWindowLimiter(quota=0, window=60.0)
		with self.assertRaises(ValueError):
			SlidingWindowLimiter(quota=5, window=0)


class AdmissionModuleTests(TestCase):
	def tearDown(self) -> None:
		admission_service.reset()

	def test_process_limiter_reads_quota_from_environment(self) -> None:
		with patch.dict(os.environ, {"GATEWAY_RATE_LIMIT": "2", "GATEWAY_RATE_WINDOW_S": "30"}, clear=False):
			admission_service.reset()
			self.assertTrue(admission_service.allow("client"))
			self.assertTrue(admission_service.allow("client"))
			self.assertFalse(admission_service.allow("client"))
			self.assertEqual(admission_service.limiter().window, 30.0)

	def test_invalid_environment_values_fall_back_to_defaults(self) -> None:
		with patch.dict(os.environ, {"GATEWAY_RATE_LIMIT": "lots", "GATEWAY_RATE_WINDOW_S": "-1"}, clear=False):
			admission_service.reset()
			limiter = admission_service.limiter()
		self.assertEqual(limiter.quota, 5)
		self.assertEqual(limiter.window, 60.0)
