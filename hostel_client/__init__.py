"""
Hostel API Client.

Authenticated HTTP client for the hostel management API with transparent,
single-flight access credential renewal.
"""

from hostel_client.api_client import HostelAPIClient, RequestDispatcher

__all__ = ['HostelAPIClient', 'RequestDispatcher']
