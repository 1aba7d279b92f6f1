"""
Analysis configuration - explicit parameters for a portfolio analysis run.
Loaded from YAML with environment defaults from .env.
"""

import os
import yaml
from dataclasses import dataclass, field
from datetime import date, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from dotenv import load_dotenv

from analysis.calculations.portfolio import Portfolio, RebalanceFrequency
from analysis.calculations.returns import FREQUENCY_CODES, RETURN_METHODS


# Load .env file before reading environment defaults
load_dotenv()


FACTOR_NAMES = ['Mkt-RF', 'SMB', 'HML']

# Calendar days spanned by one period, with slack for holidays
PERIOD_LOOKBACK_DAYS = {'daily': 7, 'weekly': 14, 'monthly': 45, 'quarterly': 120, 'yearly': 400}


def _env_float(name: str, default: str) -> float:
    return float(os.getenv(name, default))


def _env_int(name: str, default: str) -> int:
    return int(os.getenv(name, default))


def default_db_path() -> str:
    return os.getenv('PORTFOLIO_DB_PATH', './data/portfolio.db')


@dataclass
class SimulationConfig:
    """Monte Carlo settings."""
    n_paths: int = 51
    n_periods: int = 120
    seed: Optional[int] = None
    max_workers: Optional[int] = None

    def __post_init__(self):
        if self.n_paths < 1:
            raise ValueError(f"n_paths must be >= 1, got {self.n_paths}")
        if self.n_periods < 1:
            raise ValueError(f"n_periods must be >= 1, got {self.n_periods}")


@dataclass
class AnalysisConfig:
    """
    Every knob of a portfolio analysis run.

    Weights are validated by building the Portfolio, so a bad config fails
    with WeightSumError / PortfolioError before any data is touched.
    """
    symbols: List[str]
    weights: List[float]
    start_date: date
    end_date: Optional[date] = None
    window: int = field(default_factory=lambda: _env_int('ROLLING_WINDOW', '24'))
    rebalance: Optional[str] = 'monthly'
    risk_free_rate: float = field(default_factory=lambda: _env_float('RISK_FREE_RATE', '0.0003'))
    frequency: str = 'monthly'
    return_method: str = 'log'
    market_symbol: Optional[str] = 'SPY'
    factors: List[str] = field(default_factory=lambda: list(FACTOR_NAMES))
    simulation: SimulationConfig = field(default_factory=SimulationConfig)

    def __post_init__(self):
        if isinstance(self.start_date, str):
            self.start_date = date.fromisoformat(self.start_date)

        if isinstance(self.end_date, str):
            self.end_date = date.fromisoformat(self.end_date)

        if self.end_date is None:
            self.end_date = date.today()

        if self.start_date > self.end_date:
            raise ValueError("start_date must be <= end_date")

        if isinstance(self.simulation, dict):
            self.simulation = SimulationConfig(**self.simulation)

        if isinstance(self.window, bool) or not isinstance(self.window, int) or self.window < 2:
            raise ValueError(f"window must be an integer >= 2, got {self.window}")

        if self.frequency != 'daily' and self.frequency not in FREQUENCY_CODES:
            raise ValueError(f"Unknown frequency: {self.frequency}")

        if self.return_method not in RETURN_METHODS:
            raise ValueError(f"Unknown return method: {self.return_method}")

        if self.rebalance is not None:
            self.rebalance = RebalanceFrequency(self.rebalance).value

        # Fails fast with PortfolioError / WeightSumError
        Portfolio.from_lists(self.symbols, self.weights, self.rebalance)

    @property
    def portfolio(self) -> Portfolio:
        return Portfolio.from_lists(self.symbols, self.weights, self.rebalance)

    @property
    def fetch_symbols(self) -> List[str]:
        """Portfolio symbols plus the market benchmark, without duplicates."""
        symbols = list(self.symbols)
        if self.market_symbol and self.market_symbol not in symbols:
            symbols.append(self.market_symbol)
        return symbols

    @property
    def fetch_start_date(self) -> date:
        """
        First price date to load.

        One extra period before start_date so the first return lands on
        or after start_date.
        """
        return self.start_date - timedelta(days=PERIOD_LOOKBACK_DAYS[self.frequency])

    def to_dict(self) -> Dict[str, Any]:
        return {
            'symbols': list(self.symbols),
            'weights': list(self.weights),
            'start_date': self.start_date.isoformat(),
            'end_date': self.end_date.isoformat(),
            'window': self.window,
            'rebalance': self.rebalance,
            'risk_free_rate': self.risk_free_rate,
            'frequency': self.frequency,
            'return_method': self.return_method,
            'market_symbol': self.market_symbol,
            'factors': list(self.factors),
            'simulation': {
                'n_paths': self.simulation.n_paths,
                'n_periods': self.simulation.n_periods,
                'seed': self.simulation.seed,
            },
        }


def load_config(config_path: Union[str, Path]) -> AnalysisConfig:
    """
    Load an AnalysisConfig from a YAML file.

    Expected layout:
        portfolio:
          symbols: [SPY, EFA, IJS, EEM, AGG]
          weights: [0.25, 0.25, 0.20, 0.20, 0.10]
          rebalance: monthly
        analysis:
          start_date: 2013-01-01
          window: 24
          risk_free_rate: 0.0003
        simulation:
          n_paths: 51
          n_periods: 120

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If required sections are missing or values are invalid
    """
    config_path = Path(config_path)

    with open(config_path, 'r') as f:
        raw = yaml.safe_load(f) or {}

    portfolio = raw.get('portfolio')
    if not portfolio or 'symbols' not in portfolio or 'weights' not in portfolio:
        raise ValueError(f"{config_path}: 'portfolio' section needs symbols and weights")

    analysis = raw.get('analysis') or {}
    if 'start_date' not in analysis:
        raise ValueError(f"{config_path}: 'analysis.start_date' is required")

    kwargs: Dict[str, Any] = {
        'symbols': [str(s) for s in portfolio['symbols']],
        'weights': [float(w) for w in portfolio['weights']],
        'rebalance': portfolio.get('rebalance', 'monthly'),
    }

    # YAML parses bare dates into date objects already
    for key in ('start_date', 'end_date', 'window', 'risk_free_rate', 'frequency',
                'return_method', 'market_symbol', 'factors'):
        if key in analysis:
            kwargs[key] = analysis[key]

    if raw.get('simulation'):
        kwargs['simulation'] = SimulationConfig(**raw['simulation'])

    return AnalysisConfig(**kwargs)
