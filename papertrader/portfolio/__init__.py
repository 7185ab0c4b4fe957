"""Position ledger and order placement."""
