"""
Analysis Engine Module

Calculates trailing-window indicators from loaded price tables:
- Simple Moving Average (SMA)
- Exponential Moving Average (EMA)
- Price volatility (population standard deviation of close)
"""

__version__ = "0.1.0"
