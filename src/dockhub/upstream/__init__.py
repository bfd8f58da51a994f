"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Upstream REST access: credentials, token lifecycle and the resilient client.
"""

from .client import UpstreamClient, UpstreamConfig
from .credentials import CredentialKind, TokenCache, UpstreamCredential

__all__ = [
    "UpstreamClient",
    "UpstreamConfig",
    "UpstreamCredential",
    "CredentialKind",
    "TokenCache",
]
