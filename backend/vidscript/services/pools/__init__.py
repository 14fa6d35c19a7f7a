"""
Resource pools for upstream calls.

- CredentialPool: API keys with quota/rate-limit failover
- EgressPool: proxies with connectivity probing

Both are created by the service container and injected into the client;
there are no module-level pool instances.
"""

from .base import FailureKind, PoolConfigurationError, PoolEntry, ResourcePool
from .credential_pool import Credential, CredentialPool
from .egress_pool import EgressPath, EgressPool, detect_proxy_type

__all__ = [
    "FailureKind",
    "PoolConfigurationError",
    "PoolEntry",
    "ResourcePool",
    "Credential",
    "CredentialPool",
    "EgressPath",
    "EgressPool",
    "detect_proxy_type",
]
