"""Shipfile - scoped permissions for shared storage buckets.

A bucket owner invites members by email. Each member holds a set of
capability flags and a scope: the whole bucket or a list of folders.
Members with the ``inviteMembers`` capability may invite others, but never
beyond their own permissions or folders.
"""

__version__ = "1.0.0"
