"""Error taxonomy shared by the session, dedupe and streaming layers."""

from __future__ import annotations


class BackingStoreUnavailable(Exception):
    """The TTL key-value store could not be reached or answered with an error."""


class UpstreamRunFailure(Exception):
    """The agent run-event stream raised before completing."""


class InvariantViolation(Exception):
    """Stored history breaks a pairing/ordering invariant it should never break."""
