"""
Unit tests for execution/hibp_service.py

HTTP is mocked at requests.get; no network access.
"""

import unittest
from unittest.mock import patch

import requests

from execution.config_service import Settings
from execution.hibp_service import (
    FAILED,
    FOUND,
    NO_BREACHES,
    check_subscription,
    fetch_breaches,
)
from tests.fixtures.breach_factory import create_hibp_breach, create_mock_response


def _settings(**overrides) -> Settings:
    values = {"api_key": "secret-key", "template_path": "unused.html"}
    values.update(overrides)
    return Settings(**values)


class TestCheckSubscription(unittest.TestCase):
    @patch("execution.hibp_service.requests.get")
    def test_success_sets_rate_limit(self, mock_get):
        mock_get.return_value = create_mock_response(
            200, {"SubscriptionName": "Pwned 2", "Rpm": 50}
        )
        settings = _settings()

        self.assertTrue(check_subscription(settings))
        self.assertEqual(settings.rate_limit, 50)

    @patch("execution.hibp_service.requests.get")
    def test_key_sent_as_header_only(self, mock_get):
        mock_get.return_value = create_mock_response(200, {"Rpm": 10})

        check_subscription(_settings())

        args, kwargs = mock_get.call_args
        self.assertTrue(args[0].endswith("/subscription/status"))
        self.assertEqual(kwargs["headers"]["hibp-api-key"], "secret-key")
        self.assertNotIn("secret-key", args[0])
        self.assertNotIn("params", kwargs)

    @patch("execution.hibp_service.requests.get")
    def test_unauthorized_leaves_rate_limit(self, mock_get):
        mock_get.return_value = create_mock_response(401, {})
        settings = _settings()

        self.assertFalse(check_subscription(settings))
        self.assertEqual(settings.rate_limit, 10)

    @patch("execution.hibp_service.requests.get")
    def test_network_error_returns_false(self, mock_get):
        mock_get.side_effect = requests.exceptions.ConnectionError("down")

        self.assertFalse(check_subscription(_settings()))

    @patch("execution.hibp_service.requests.get")
    def test_missing_rpm_returns_false(self, mock_get):
        mock_get.return_value = create_mock_response(200, {"SubscriptionName": "x"})

        self.assertFalse(check_subscription(_settings()))

    @patch("execution.hibp_service.requests.get")
    def test_missing_key_skips_request(self, mock_get):
        self.assertFalse(check_subscription(_settings(api_key="")))
        mock_get.assert_not_called()

    def test_key_not_logged(self):
        with patch("execution.hibp_service.requests.get") as mock_get:
            mock_get.return_value = create_mock_response(401, {})
            with self.assertLogs("execution.hibp_service", level="DEBUG") as logs:
                check_subscription(_settings())

        self.assertFalse(any("secret-key" in line for line in logs.output))


class TestFetchBreaches(unittest.TestCase):
    @patch("execution.hibp_service.requests.get")
    def test_found_maps_records(self, mock_get):
        mock_get.return_value = create_mock_response(
            200, [create_hibp_breach(), create_hibp_breach(Name="LinkedIn", Title="LinkedIn")]
        )

        result = fetch_breaches("alice@example.com", _settings())

        self.assertEqual(result.status, FOUND)
        self.assertEqual([r.name for r in result.breaches], ["Adobe", "LinkedIn"])
        self.assertEqual(result.breaches[0].email, "alice@example.com")
        self.assertEqual(result.breaches[0].added_date, "2023-01-01T00:00:00Z")

    @patch("execution.hibp_service.requests.get")
    def test_requests_untruncated_response(self, mock_get):
        mock_get.return_value = create_mock_response(200, [])

        fetch_breaches("alice@example.com", _settings())

        args, kwargs = mock_get.call_args
        self.assertIn("/breachedaccount/alice%40example.com", args[0])
        self.assertEqual(kwargs["params"], {"truncateResponse": "false"})
        self.assertEqual(kwargs["headers"]["hibp-api-key"], "secret-key")

    @patch("execution.hibp_service.requests.get")
    def test_mixed_case_address_is_normalized(self, mock_get):
        mock_get.return_value = create_mock_response(200, [create_hibp_breach()])

        result = fetch_breaches(" Alice@Example.COM ", _settings())

        args, _ = mock_get.call_args
        self.assertIn("/breachedaccount/alice%40example.com", args[0])
        self.assertEqual(result.breaches[0].email, "alice@example.com")

    @patch("execution.hibp_service.requests.get")
    def test_404_is_no_breaches(self, mock_get):
        mock_get.return_value = create_mock_response(404)

        result = fetch_breaches("alice@example.com", _settings())

        self.assertEqual(result.status, NO_BREACHES)
        self.assertIsNone(result.breaches)

    @patch("execution.hibp_service.requests.get")
    def test_timeout_is_failure_with_reason(self, mock_get):
        mock_get.side_effect = requests.exceptions.Timeout()

        result = fetch_breaches("alice@example.com", _settings())

        self.assertEqual(result.status, FAILED)
        self.assertEqual(result.reason, "Request timeout")
        self.assertIsNone(result.breaches)

    @patch("execution.hibp_service.requests.get")
    def test_rate_limited_is_failure(self, mock_get):
        mock_get.return_value = create_mock_response(429, headers={"Retry-After": "3"})

        result = fetch_breaches("alice@example.com", _settings())

        self.assertEqual(result.status, FAILED)
        self.assertIn("retry after 3s", result.reason)

    @patch("execution.hibp_service.requests.get")
    def test_server_error_is_failure(self, mock_get):
        mock_get.return_value = create_mock_response(503)

        result = fetch_breaches("alice@example.com", _settings())

        self.assertEqual(result.status, FAILED)
        self.assertEqual(result.reason, "HTTP 503")

    @patch("execution.hibp_service.requests.get")
    def test_malformed_breach_skipped(self, mock_get):
        mock_get.return_value = create_mock_response(
            200, [create_hibp_breach(Name=""), create_hibp_breach(Name="Dropbox")]
        )

        result = fetch_breaches("alice@example.com", _settings())

        self.assertEqual([r.name for r in result.breaches], ["Dropbox"])

    @patch("execution.hibp_service.requests.get")
    def test_invalid_json_is_failure(self, mock_get):
        response = create_mock_response(200)
        response.json.side_effect = ValueError("bad json")
        mock_get.return_value = response

        result = fetch_breaches("alice@example.com", _settings())

        self.assertEqual(result.status, FAILED)


if __name__ == "__main__":
    unittest.main()
