"""
Monte Carlo growth simulation.

Simulates compounding growth of $1 from i.i.d. normal periodic returns:
each path prepends 1.0 and takes the running product of (1 + r_t).

Determinism: a seeded call is reproducible (also across worker counts,
since every path draws from its own child stream of one SeedSequence).
Unseeded calls produce different paths on every invocation.
"""

import numpy as np
import pandas as pd
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from analysis.calculations.statistics import mean_return, standard_deviation


DEFAULT_QUANTILES = (0.05, 0.25, 0.5, 0.75, 0.95)


@dataclass
class SimulationResult:
    """
    Container for simulated growth paths.

    Attributes:
        paths: Growth of $1, shape (n_paths, n_periods + 1); column 0 is 1.0
        mean_return: Per-period mean used for sampling
        stddev_return: Per-period standard deviation used for sampling
        seed: Seed used (None if unseeded)
    """
    paths: np.ndarray
    mean_return: float
    stddev_return: float
    seed: Optional[int] = None

    @property
    def n_paths(self) -> int:
        return int(self.paths.shape[0])

    @property
    def n_periods(self) -> int:
        return int(self.paths.shape[1] - 1)

    @property
    def terminal_values(self) -> np.ndarray:
        return self.paths[:, -1]

    @property
    def min_terminal(self) -> float:
        return float(np.min(self.terminal_values))

    @property
    def median_terminal(self) -> float:
        return float(np.median(self.terminal_values))

    @property
    def max_terminal(self) -> float:
        return float(np.max(self.terminal_values))

    def quantiles(self, probs: Iterable[float] = DEFAULT_QUANTILES) -> Dict[float, float]:
        """Quantiles of the terminal-value distribution, keyed by probability."""
        probs = list(probs)
        for p in probs:
            if not 0 <= p <= 1:
                raise ValueError(f"Quantile probabilities must be in [0, 1], got {p}")
        values = np.quantile(self.terminal_values, probs)
        return {float(p): float(v) for p, v in zip(probs, values)}

    def summary(self, probs: Iterable[float] = DEFAULT_QUANTILES) -> Dict[str, object]:
        return {
            'n_paths': self.n_paths,
            'n_periods': self.n_periods,
            'mean_return': self.mean_return,
            'stddev_return': self.stddev_return,
            'seed': self.seed,
            'min_terminal': self.min_terminal,
            'median_terminal': self.median_terminal,
            'max_terminal': self.max_terminal,
            'quantiles': {str(p): v for p, v in self.quantiles(probs).items()},
        }

    def to_frame(self) -> pd.DataFrame:
        """One column per path (sim_1, sim_2, ...), indexed by period 0..n."""
        columns = [f'sim_{i + 1}' for i in range(self.n_paths)]
        frame = pd.DataFrame(self.paths.T, columns=columns)
        frame.index.name = 'period'
        return frame


def _simulate_path(
    seed_seq: np.random.SeedSequence,
    n_periods: int,
    mean: float,
    stddev: float
) -> np.ndarray:
    rng = np.random.default_rng(seed_seq)
    draws = rng.normal(loc=mean, scale=stddev, size=n_periods)
    return np.cumprod(np.concatenate(([1.0], 1.0 + draws)))


def simulate(
    n_periods: int,
    mean_return: float,
    stddev_return: float,
    n_paths: int,
    seed: Optional[int] = None,
    max_workers: Optional[int] = None
) -> SimulationResult:
    """
    Simulate n_paths independent growth paths of n_periods each.

    Args:
        n_periods: Periods per path
        mean_return: Per-period mean return
        stddev_return: Per-period standard deviation (0 gives deterministic growth)
        n_paths: Number of paths
        seed: Seed for reproducibility (None = fresh entropy every call)
        max_workers: Run paths on a thread pool when > 1

    Returns:
        SimulationResult with an (n_paths, n_periods + 1) growth grid

    Raises:
        ValueError: If counts are < 1 or stddev is negative
    """
    if n_periods < 1:
        raise ValueError(f"n_periods must be >= 1, got {n_periods}")

    if n_paths < 1:
        raise ValueError(f"n_paths must be >= 1, got {n_paths}")

    if stddev_return < 0:
        raise ValueError(f"stddev_return cannot be negative, got {stddev_return}")

    if not np.isfinite(mean_return) or not np.isfinite(stddev_return):
        raise ValueError("mean_return and stddev_return must be finite")

    children = np.random.SeedSequence(seed).spawn(n_paths)
    args = (n_periods, float(mean_return), float(stddev_return))

    if max_workers is not None and max_workers > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            rows: List[np.ndarray] = list(
                pool.map(lambda child: _simulate_path(child, *args), children)
            )
    else:
        rows = [_simulate_path(child, *args) for child in children]

    return SimulationResult(
        paths=np.vstack(rows),
        mean_return=float(mean_return),
        stddev_return=float(stddev_return),
        seed=seed
    )


def simulate_from_returns(
    returns: pd.Series,
    n_periods: int,
    n_paths: int,
    seed: Optional[int] = None,
    max_workers: Optional[int] = None
) -> SimulationResult:
    """Simulate using the mean and population standard deviation of observed returns."""
    return simulate(
        n_periods=n_periods,
        mean_return=mean_return(returns),
        stddev_return=standard_deviation(returns),
        n_paths=n_paths,
        seed=seed,
        max_workers=max_workers
    )
