"""Pool accounting: trees, nullifiers, withdrawals and orchestration."""
