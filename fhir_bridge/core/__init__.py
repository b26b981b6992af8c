"""
Core Infrastructure Package

Contains shared infrastructure components:
- config: Application configuration and settings
- logging: Structured JSON logging utilities
- mongo: MongoDB client singleton and index management
- errors: Exception hierarchy for token, send and ledger failures
"""

__all__ = ["config", "logging", "mongo", "errors"]
