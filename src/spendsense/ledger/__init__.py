"""Split calculation, balances, aggregation and lifecycle management."""
