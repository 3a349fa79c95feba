"""Student fee ledger and installment engine."""
