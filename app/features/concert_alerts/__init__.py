"""
Concert alerts feature package.

This vertical slice keeps every layer of the concert notification flow
co-located: domain models and geo math, repositories, services (matching,
background sync, digest) and the periodic jobs that drive them.
"""
