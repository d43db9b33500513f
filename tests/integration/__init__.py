"""Integration tests for vault-agent.

End-to-end scenarios that drive a full client against the in-memory server:
- test_lifecycle_scenarios.py: token and secret lease lifecycles, revocation,
  exactly-once unwrap, local rejection paths
- test_background_renewal.py: the real renewal loop on the wall clock
"""
