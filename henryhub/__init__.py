"""Seasonal ARIMA analysis of the monthly Henry Hub natural gas spot price."""
