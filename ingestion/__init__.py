"""
Data Ingestion Module

Handles fetching and validating data from external sources:
- yfinance for daily adjusted closes
- Kenneth French's data library for Fama-French factor returns
"""

__version__ = "0.1.0"
