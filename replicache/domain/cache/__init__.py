"""
Cache Domain Layer

Value objects for the replicated cache: server addresses, keys,
expirations and the fan-out error policy.
"""
