"""Lending Library - Services Package

Outbound integrations:
- Google Books catalog search
- Shared async HTTP client
"""
