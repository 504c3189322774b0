"""
Command-line interface: tradesim ingest | backtest | paper | orders | health.
"""
