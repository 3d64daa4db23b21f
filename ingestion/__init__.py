"""
Data Ingestion Module

Handles reading and normalizing daily price history from source files:
- CSV files with Date, Open, High, Low, Close, Volume columns
- MM/DD/YYYY source dates normalized to ISO-8601
"""

__version__ = "0.1.0"
