"""
Authentication and authorization for the customer service.

This module provides:
- JWT token issuing and validation
- Bearer token authentication middleware
- Route-level role policy and per-record ownership checks
"""
