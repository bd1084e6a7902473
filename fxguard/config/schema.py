"""
Configuration schema and loader.

This module defines dataclasses that mirror the expected structure of
the YAML configuration file (`config.yaml`).  A helper function
`load_config()` reads a YAML file from disk, fills in defaults for any
missing fields and validates the result.

The engine treats the configuration as immutable once it has been
constructed: there is no hot reload.  Invalid values are rejected with
`ConfigurationError` before a single tick is processed.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, asdict
from typing import List, Dict, Any
import yaml


STOP_MODES = ("fixed", "breakeven", "trailing")
SIGNAL_TYPES = ("rsi_threshold", "rsi_extreme", "ma_crossover", "breakout")
WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


class ConfigurationError(ValueError):
    """Raised when the configuration cannot be used to start the engine."""


@dataclass
class StopConfig:
    """Protective stop and take‑profit settings.

    Attributes
    ----------
    mode : str
        ``fixed``, ``breakeven`` or ``trailing``.
    stop_loss_pips : float
        Initial stop distance from the entry price.  In breakeven mode this
        is also the profit (in pips) that triggers the move to breakeven.
    take_profit_pips : float
        Take‑profit distance.  ``0`` disables the take‑profit.  Ignored in
        trailing mode, where positions are opened without a target.
    breakeven_pips : float
        Buffer beyond the entry price at which the breakeven stop is placed.
    trailing_step_pips : float
        Minimum growth of the favourable excursion before the trailing stop
        moves again.  ``0`` trails on every pip.
    """

    mode: str = "fixed"
    stop_loss_pips: float = 35.0
    take_profit_pips: float = 135.0
    breakeven_pips: float = 2.0
    trailing_step_pips: float = 0.0


@dataclass
class RiskConfig:
    """Position sizing and daily loss budget.

    Attributes
    ----------
    volume : float
        Base position size in lots before the martingale multiplier.
    lot_step : float
        Volume granularity accepted by the broker.
    max_daily_loss : float
        Realised loss (account currency) after which no new position is
        opened for the rest of the day.  ``0`` disables the budget.
    martingale : bool
        Multiply the base volume by the number of consecutive losses + 1.
    """

    volume: float = 0.15
    lot_step: float = 0.01
    max_daily_loss: float = 200.0
    martingale: bool = False


@dataclass
class BlackoutConfig:
    """Weekly window in which all positions are closed and none opened."""

    weekday: str = "friday"
    start: str = "20:00"


@dataclass
class SignalConfig:
    """Selects and parameterises the signal source.

    ``type`` is one of ``rsi_threshold``, ``rsi_extreme``, ``ma_crossover``
    or ``breakout``.  Only the fields relevant to the chosen type are read.
    """

    type: str = "rsi_threshold"
    periods: int = 14
    high_ceil: float = 80.0
    low_ceil: float = 20.0
    fast_period: int = 5
    slow_period: int = 10
    session_start: str = "06:00"
    session_end: str = "20:00"


@dataclass
class CostsConfig:
    """Models trading costs for the paper venue.

    Attributes
    ----------
    commission_per_lot : float
        Commission charged per standard lot traded, deducted from the
        gross profit of every closed paper position.
    """

    commission_per_lot: float = 0.0


@dataclass
class MT5Config:
    """Holds parameters required to connect to a MetaTrader 5 terminal.

    Attributes
    ----------
    login : int
        Account login number.
    password : str
        Password for the account.
    server : str
        Broker server name (e.g. ``Bidget-MT5-Live``).
    path : str
        File system path to the MetaTrader 5 terminal executable
        (`terminal64.exe`).
    deviation : int
        Maximum accepted slippage, in points, for market orders.
    magic : int
        Expert identifier stamped on every order sent by this engine.
    """

    login: int = 0
    password: str = ""
    server: str = ""
    path: str = ""
    deviation: int = 10
    magic: int = 240017


@dataclass
class DataConfig:
    """Data source configuration.

    Attributes
    ----------
    timezone : str
        IANA timezone of the trading platform.  Day rollover and the
        blackout window are evaluated in this timezone.
    history_bars : int
        Number of completed bars handed to the signal source each tick.
    poll_seconds : float
        Delay between two polling cycles of the runner.
    """

    timezone: str = "UTC"
    history_bars: int = 200
    poll_seconds: float = 1.0


@dataclass
class Config:
    """Root configuration for one engine instance.

    Attributes
    ----------
    symbol : str
        Instrument traded by this instance (e.g. ``"EURUSD"``).
    timeframe : str
        Bar timeframe used for the signal history.
    label : str
        Owner tag stamped on every position opened by the engine.  Positions
        with another label on the same symbol are never touched.
    pip_size : float
        Price value of one pip (``0.0001`` for EURUSD).
    digits : int
        Number of decimals in a quoted price.
    contract_size : float
        Units per lot, used to value paper positions.
    stops, risk, blackout, signal, costs, mt5, data
        Nested sections, see the respective dataclasses.
    mode : str
        Operating mode: ``paper`` or ``live``.
    state_file : str
        Where the runner persists the risk budget between restarts.
    results_dir : str
        Where the runner writes the session report on shutdown.
    """

    symbol: str = "EURUSD"
    timeframe: str = "M1"
    label: str = "fxguard"
    pip_size: float = 0.0001
    digits: int = 5
    contract_size: float = 100_000.0
    stops: StopConfig = field(default_factory=StopConfig)
    risk: RiskConfig = field(default_factory=RiskConfig)
    blackout: BlackoutConfig = field(default_factory=BlackoutConfig)
    signal: SignalConfig = field(default_factory=SignalConfig)
    costs: CostsConfig = field(default_factory=CostsConfig)
    mt5: MT5Config = field(default_factory=MT5Config)
    data: DataConfig = field(default_factory=DataConfig)
    mode: str = "paper"
    state_file: str = "state.json"
    results_dir: str = "results"

    def validate(self) -> "Config":
        """Check every value the engine depends on.

        Returns the configuration itself so the call can be chained.

        Raises
        ------
        ConfigurationError
            On the first invalid value found.
        """
        try:
            self._check()
        except TypeError as exc:
            raise ConfigurationError(f"Invalid configuration value: {exc}") from exc
        return self

    def _check(self) -> None:
        if not self.symbol:
            raise ConfigurationError("symbol must not be empty")
        if not self.label:
            raise ConfigurationError("label must not be empty")
        if self.pip_size <= 0:
            raise ConfigurationError(f"pip_size must be positive, got {self.pip_size}")
        if self.digits < 0:
            raise ConfigurationError(f"digits must be non-negative, got {self.digits}")
        if self.contract_size <= 0:
            raise ConfigurationError(f"contract_size must be positive, got {self.contract_size}")

        stops = self.stops
        if stops.mode not in STOP_MODES:
            raise ConfigurationError(f"stops.mode must be one of {STOP_MODES}, got {stops.mode!r}")
        if stops.stop_loss_pips <= 0:
            raise ConfigurationError(f"stops.stop_loss_pips must be positive, got {stops.stop_loss_pips}")
        for name in ("take_profit_pips", "breakeven_pips", "trailing_step_pips"):
            if getattr(stops, name) < 0:
                raise ConfigurationError(f"stops.{name} must not be negative")

        risk = self.risk
        if risk.volume <= 0:
            raise ConfigurationError(f"risk.volume must be positive, got {risk.volume}")
        if risk.lot_step <= 0:
            raise ConfigurationError(f"risk.lot_step must be positive, got {risk.lot_step}")
        if risk.max_daily_loss < 0:
            raise ConfigurationError("risk.max_daily_loss must not be negative")

        if self.blackout.weekday.lower() not in WEEKDAYS:
            raise ConfigurationError(f"blackout.weekday is not a weekday: {self.blackout.weekday!r}")
        _check_time_str("blackout.start", self.blackout.start)

        sig = self.signal
        if sig.type not in SIGNAL_TYPES:
            raise ConfigurationError(f"signal.type must be one of {SIGNAL_TYPES}, got {sig.type!r}")
        if sig.periods < 1:
            raise ConfigurationError(f"signal.periods must be at least 1, got {sig.periods}")
        if not 0 <= sig.low_ceil < sig.high_ceil <= 100:
            raise ConfigurationError("signal ceilings must satisfy 0 <= low_ceil < high_ceil <= 100")
        if sig.fast_period < 1 or sig.slow_period <= sig.fast_period:
            raise ConfigurationError("signal periods must satisfy 1 <= fast_period < slow_period")
        _check_time_str("signal.session_start", sig.session_start)
        _check_time_str("signal.session_end", sig.session_end)

        if self.mode not in ("paper", "live"):
            raise ConfigurationError(f"mode must be 'paper' or 'live', got {self.mode!r}")
        if self.data.history_bars < 2:
            raise ConfigurationError("data.history_bars must be at least 2")
        if self.data.poll_seconds <= 0:
            raise ConfigurationError("data.poll_seconds must be positive")


def _check_time_str(name: str, value: str) -> None:
    try:
        hour, minute = map(int, str(value).split(":"))
    except ValueError:
        raise ConfigurationError(f"{name} must use HH:MM format, got {value!r}") from None
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise ConfigurationError(f"{name} is out of range: {value!r}")


def _merge_dict(defaults: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge two dictionaries.

    The values in `override` take precedence over those in `defaults`.
    This helper is used when loading YAML into nested dataclasses.
    """
    result: Dict[str, Any] = defaults.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _merge_dict(result[key], value)
        else:
            result[key] = value
    return result


_SECTIONS = {
    'stops': StopConfig,
    'risk': RiskConfig,
    'blackout': BlackoutConfig,
    'signal': SignalConfig,
    'costs': CostsConfig,
    'mt5': MT5Config,
    'data': DataConfig,
}


def _build_section(name: str, cls: type, values: Any) -> Any:
    """Instantiate one section, checking each value against its default's type.

    Integers are accepted where a float is expected; anything else that
    does not match (a quoted number, a boolean threshold) is rejected.
    """
    if not isinstance(values, dict):
        raise ConfigurationError(f"'{name}' must be a mapping, got {values!r}")
    try:
        section = cls(**values)
    except TypeError as exc:
        raise ConfigurationError(f"Invalid '{name}' section: {exc}") from exc

    defaults = cls()
    for f in fields(cls):
        value = getattr(section, f.name)
        default = getattr(defaults, f.name)
        where = f"{name}.{f.name}"
        if isinstance(default, bool):
            if not isinstance(value, bool):
                raise ConfigurationError(f"{where} must be true or false, got {value!r}")
        elif isinstance(default, (int, float)):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigurationError(f"{where} must be a number, got {value!r}")
            if isinstance(default, int) and not float(value).is_integer():
                raise ConfigurationError(f"{where} must be a whole number, got {value!r}")
            setattr(section, f.name, type(default)(value))
        elif isinstance(default, str):
            if value is None or isinstance(value, (dict, list)):
                raise ConfigurationError(f"{where} must be a string, got {value!r}")
            setattr(section, f.name, str(value))
    return section


def config_from_dict(raw: Dict[str, Any]) -> Config:
    """Build a validated `Config` from a (possibly partial) dictionary."""
    defaults: Dict[str, Any] = asdict(Config())
    unknown: List[str] = [key for key in raw if key not in defaults]
    if unknown:
        raise ConfigurationError(f"Unknown configuration keys: {sorted(unknown)}")
    merged = _merge_dict(defaults, raw)

    sections: Dict[str, Any] = {name: _build_section(name, cls, merged[name]) for name, cls in _SECTIONS.items()}

    try:
        cfg = Config(
            symbol=str(merged['symbol']),
            timeframe=str(merged['timeframe']).upper(),
            label=str(merged['label']),
            pip_size=float(merged['pip_size']),
            digits=int(merged['digits']),
            contract_size=float(merged['contract_size']),
            mode=str(merged['mode']).lower(),
            state_file=str(merged['state_file']),
            results_dir=str(merged['results_dir']),
            **sections,
        )
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid configuration value: {exc}") from exc
    return cfg.validate()


def load_config(path: str) -> Config:
    """Load a configuration file from the given YAML path.

    Parameters
    ----------
    path : str
        Path to the YAML file.

    Returns
    -------
    Config
        A validated configuration object.  Missing fields are filled with
        the defaults defined in the dataclasses.
    """
    with open(path, "r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"{path} must contain a mapping at the top level")
    return config_from_dict(raw)
