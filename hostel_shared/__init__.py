"""
Shared components for the Hostel API Client.

This package contains the data models, collaborator interfaces, exception
hierarchy and logging configuration used across the client.
"""
