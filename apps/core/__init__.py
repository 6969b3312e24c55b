"""
Core app: shared base model, structured logging, and startup checks.
"""
