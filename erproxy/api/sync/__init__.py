"""Sync trigger resources.

Usage
-----
Import the sync resource for route registration::

    from erproxy.api.sync.resources import SyncResource
"""
