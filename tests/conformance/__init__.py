"""
Lot ledger conformance suite: property-based checks over random call sequences.

strategies.py             - hypothesis operation strategies, seeded ledger, apply_operation
test_conservation.py      - every lot's balances sum to its supply; balances follow transfer records
test_atomicity.py         - refused calls leave no trace; resolved transfers stay frozen
test_query_consistency.py - query results match a brute-force scan; same calls, same state
"""
