"""
Analysis Engine Module

Calculates portfolio metrics from ingested prices and factors:
- Periodic returns and weighted portfolio returns (with rebalancing)
- Standard deviation, skewness, kurtosis, Sharpe ratio
- CAPM beta and Fama-French factor regressions
- Component contribution to portfolio risk
- Rolling-window versions of all of the above
- Monte Carlo growth simulation
"""

__version__ = "0.1.0"
