"""
firemock test suite.

This package contains:
- unit/: Unit tests per module (engine core and sdk surface)
- integration/: Scenarios driven through the sdk surface only
"""
