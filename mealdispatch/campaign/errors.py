"""Exception types raised by the campaign dispatch package.

Lease contention is not an exception -- ``LeaseManager.acquire`` returns
an ``AcquireResult`` with ``ok=False``.  Recipient- and chunk-level
delivery failures are recorded as data, never raised past the dispatcher.
"""
from __future__ import annotations


class CampaignError(Exception):
    """Base class for campaign dispatch errors."""


class TransientStoreError(CampaignError):
    """A checkpoint read or write against the database failed."""


class CheckpointError(CampaignError):
    """A checkpoint write would break an invariant (regression, write after completion)."""


class RenderError(CampaignError):
    """A single recipient's message could not be rendered."""


class ChannelError(CampaignError):
    """The delivery channel rejected an entire chunk (e.g. transport failure)."""
