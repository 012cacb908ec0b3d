"""Services: credit ledger, payment verification, authorization gate, jobs."""
