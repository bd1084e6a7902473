import os
import sys
import tempfile
import textwrap

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from fxguard.config.schema import Config, ConfigurationError, config_from_dict, load_config

import unittest


class TestLoadConfig(unittest.TestCase):
    def _write(self, text: str) -> str:
        fd, path = tempfile.mkstemp(suffix=".yaml")
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(textwrap.dedent(text))
        self.addCleanup(os.remove, path)
        return path

    def test_partial_file_is_merged_with_defaults(self) -> None:
        path = self._write(
            """
            symbol: GBPUSD
            label: rsi-bot
            stops:
              mode: trailing
              stop_loss_pips: 45
            risk:
              martingale: true
            """
        )
        cfg = load_config(path)
        self.assertEqual(cfg.symbol, "GBPUSD")
        self.assertEqual(cfg.label, "rsi-bot")
        self.assertEqual(cfg.stops.mode, "trailing")
        self.assertEqual(cfg.stops.stop_loss_pips, 45)
        self.assertEqual(cfg.stops.take_profit_pips, 135.0)
        self.assertTrue(cfg.risk.martingale)
        self.assertEqual(cfg.risk.volume, 0.15)
        self.assertEqual(cfg.blackout.start, "20:00")

    def test_empty_file_gives_defaults(self) -> None:
        cfg = load_config(self._write(""))
        self.assertEqual(cfg, Config())

    def test_example_config_is_valid(self) -> None:
        cfg = load_config(os.path.join(PROJECT_ROOT, "config.example.yaml"))
        self.assertEqual(cfg.label, "trend-cBot")

    def test_unknown_key_rejected(self) -> None:
        with self.assertRaises(ConfigurationError):
            config_from_dict({'stoploss': 10})

    def test_unknown_section_field_rejected(self) -> None:
        with self.assertRaises(ConfigurationError):
            config_from_dict({'stops': {'distance': 10}})

    def test_quoted_threshold_rejected(self) -> None:
        path = self._write(
            """
            stops:
              stop_loss_pips: '35'
            """
        )
        with self.assertRaises(ConfigurationError):
            load_config(path)

    def test_integer_accepted_for_float_field(self) -> None:
        cfg = config_from_dict({'risk': {'max_daily_loss': 150}})
        self.assertIsInstance(cfg.risk.max_daily_loss, float)
        self.assertEqual(cfg.risk.max_daily_loss, 150.0)

    def test_non_mapping_file_rejected(self) -> None:
        with self.assertRaises(ConfigurationError):
            load_config(self._write("- a\n- b\n"))


class TestValidate(unittest.TestCase):
    def assertInvalid(self, **changes) -> None:
        raw = {}
        for dotted, value in changes.items():
            section, _, key = dotted.partition("__")
            if key:
                raw.setdefault(section, {})[key] = value
            else:
                raw[section] = value
        with self.assertRaises(ConfigurationError):
            config_from_dict(raw)

    def test_defaults_are_valid(self) -> None:
        self.assertIs(Config().validate().__class__, Config)

    def test_invalid_values(self) -> None:
        self.assertInvalid(stops__mode="martingale")
        self.assertInvalid(stops__stop_loss_pips=0)
        self.assertInvalid(stops__take_profit_pips=-1)
        self.assertInvalid(risk__volume=0)
        self.assertInvalid(risk__max_daily_loss=-5)
        self.assertInvalid(blackout__start="25:00")
        self.assertInvalid(blackout__start="eight")
        self.assertInvalid(blackout__weekday="caturday")
        self.assertInvalid(signal__periods=0)
        self.assertInvalid(signal__type="macd")
        self.assertInvalid(signal__low_ceil=90)
        self.assertInvalid(pip_size=0)
        self.assertInvalid(mode="backtest")
        self.assertInvalid(stops__stop_loss_pips="35")
        self.assertInvalid(risk__max_daily_loss=None)
        self.assertInvalid(risk__martingale="yes")
        self.assertInvalid(signal__periods=14.5)
        self.assertInvalid(signal__high_ceil=True)
        self.assertInvalid(stops="trailing")

    def test_mistyped_value_set_in_code(self) -> None:
        cfg = Config()
        cfg.stops.stop_loss_pips = "35"
        with self.assertRaises(ConfigurationError):
            cfg.validate()

    def test_error_is_a_value_error(self) -> None:
        self.assertTrue(issubclass(ConfigurationError, ValueError))


if __name__ == '__main__':
    unittest.main()
