"""Foundation - core building blocks for brq.

Contains: error taxonomy and environment-based configuration.
"""
