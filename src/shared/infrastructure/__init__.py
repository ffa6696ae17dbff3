"""
Shared Infrastructure
=====================

Logging setup and helpers shared by every layer.
"""
