from __future__ import annotations

import os
import unittest
from unittest import mock

from cloudstack_node.config.runtime import (
    INTERVAL_MIN,
    CollectorSettings,
    ConfigError,
    validate_interval,
)

REQUIRED_ENV = {
    "CLOUDSTACK_HOST": "localhost",
    "CLOUDSTACK_API_KEY": "hoge",
    "CLOUDSTACK_SECRET_KEY": "fuga",
}


def _settings(**overrides) -> CollectorSettings:
    values = {"host": "localhost", "api_key": "hoge", "secret_key": "fuga", **overrides}
    return CollectorSettings(**values)


class TestIntervalEnforcement(unittest.TestCase):
    def test_interval_below_minimum_is_rejected(self):
        with self.assertRaises(ConfigError):
            _settings(interval_seconds=100)

    def test_minimum_interval_is_accepted(self):
        self.assertEqual(_settings(interval_seconds=300).interval_seconds, 300)

    def test_debug_mode_lifts_the_minimum(self):
        self.assertEqual(_settings(interval_seconds=100, debug_mode=True).interval_seconds, 100)

    def test_non_positive_interval_is_rejected_even_in_debug_mode(self):
        with self.assertRaises(ConfigError):
            validate_interval(0, debug_mode=True)

    def test_default_interval_is_the_minimum(self):
        self.assertEqual(_settings().interval_seconds, INTERVAL_MIN)


class TestCollectorSettings(unittest.TestCase):
    def test_credentials_are_required(self):
        for missing in ("host", "api_key", "secret_key"):
            with self.subTest(missing=missing):
                with self.assertRaises(ConfigError):
                    _settings(**{missing: ""})

    def test_unknown_protocol_is_rejected(self):
        with self.assertRaises(ConfigError):
            _settings(protocol="ftp")

    def test_derived_tags_and_endpoint(self):
        settings = _settings(tag="cs.prod", port=8443)

        self.assertEqual(settings.event_tag, "cs.prod.event")
        self.assertEqual(settings.usages_tag, "cs.prod.usages")
        self.assertEqual(settings.endpoint, "https://localhost:8443/client/api")

    def test_from_env_defaults(self):
        with mock.patch.dict(os.environ, REQUIRED_ENV, clear=True):
            settings = CollectorSettings.from_env()

        self.assertEqual(settings.host, "localhost")
        self.assertEqual(settings.api_key, "hoge")
        self.assertEqual(settings.secret_key, "fuga")
        self.assertEqual(settings.path, "/client/api")
        self.assertEqual(settings.protocol, "https")
        self.assertEqual(settings.port, 443)
        self.assertIsNone(settings.domain_id)
        self.assertEqual(settings.tag, "cloudstack")
        self.assertTrue(settings.ssl)
        self.assertFalse(settings.debug_mode)
        self.assertIsNone(settings.emit_path)

    def test_from_env_overrides(self):
        env = {
            **REQUIRED_ENV,
            "CLOUDSTACK_DOMAIN_ID": "domain_id",
            "CLOUDSTACK_TAG": "cs",
            "CLOUDSTACK_SSL": "false",
            "CLOUDSTACK_DEBUG_MODE": "true",
            "CLOUDSTACK_INTERVAL_SECONDS": "10",
            "CLOUDSTACK_PROTOCOL": "HTTP",
            "CLOUDSTACK_PORT": "8080",
            "CLOUDSTACK_EMIT_PATH": "out/records.jsonl",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            settings = CollectorSettings.from_env()

        self.assertEqual(settings.domain_id, "domain_id")
        self.assertEqual(settings.tag, "cs")
        self.assertFalse(settings.ssl)
        self.assertTrue(settings.debug_mode)
        self.assertEqual(settings.interval_seconds, 10)
        self.assertEqual(settings.endpoint, "http://localhost:8080/client/api")
        self.assertEqual(settings.emit_path, "out/records.jsonl")

    def test_from_env_without_credentials_fails(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(ConfigError):
                CollectorSettings.from_env()

    def test_from_env_with_non_numeric_port_fails_as_config_error(self):
        with mock.patch.dict(os.environ, {**REQUIRED_ENV, "CLOUDSTACK_PORT": "https"}, clear=True):
            with self.assertRaises(ConfigError):
                CollectorSettings.from_env()


if __name__ == "__main__":
    unittest.main()
