"""
Chaos/failure injection testing suite.

Tests run behaviour under adverse conditions:
- Bridge disruption within and beyond session failure tolerance
- Sessions that fail to join or never reconnect
- Fault-injection service outages
"""
