"""Portfolio management -- position ledger, exits, state snapshots and performance."""
