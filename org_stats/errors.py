#!/usr/bin/env python3
"""
Exceptions raised by the statistics stores and the services built on them.
"""


class OrgStatsError(RuntimeError):
    """Base class for all errors raised by org_stats."""


class StorageUnavailable(OrgStatsError):
    """The persistence medium could not be reached or rejected a statement."""


class DuplicateKeyConflict(OrgStatsError):
    """A strict insert hit a key that already exists."""


class ValidationError(OrgStatsError, ValueError):
    """Input was rejected before it reached storage."""
