"""
Authentication package for the Hostel API Client.

This package contains authentication-related functionality including
credential storage, renewal classification, single-flight credential renewal
and session invalidation.
"""
