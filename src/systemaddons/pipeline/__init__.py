"""
systemaddons-versions Pipeline

This package discovers release archives, inspects the system addons they
bundle, asks the update catalog which versions it offers, and publishes one
record per release to the store.

Core Components:
- interfaces: Immutable values exchanged between the stages
- listing: Directory listing client
- discovery: Release tree walker
- files: Archive download and extraction
- metadata: Build metadata and addon manifest parsers
- catalog: Update catalog client
- inspector: Per-release inspection
- store: Record store client and idempotent publisher
- channels: Bounded channels and the cancellation token
- orchestrator: Concurrent pipeline coordination
"""

from .catalog import UpdateCatalogClient
from .channels import CancellationToken, Channel, ChannelClosed
from .discovery import NoNightlyReleaseError, ReleaseWalker
from .inspector import ReleaseInspector
from .interfaces import FileEntry, ListingNode, Release, ReleaseInfo, SystemAddon
from .listing import ListingClient
from .orchestrator import PipelineOrchestrator, PipelineSummary
from .store import KintoStore, PublishOutcome, Publisher, record_id_for_url

__all__ = [
    # Interfaces
    "FileEntry",
    "ListingNode",
    "Release",
    "ReleaseInfo",
    "SystemAddon",
    # Clients
    "ListingClient",
    "UpdateCatalogClient",
    "KintoStore",
    # Stages
    "ReleaseWalker",
    "NoNightlyReleaseError",
    "ReleaseInspector",
    "Publisher",
    "PublishOutcome",
    "record_id_for_url",
    # Coordination
    "CancellationToken",
    "Channel",
    "ChannelClosed",
    "PipelineOrchestrator",
    "PipelineSummary",
]
