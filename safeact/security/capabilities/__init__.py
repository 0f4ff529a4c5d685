"""Capabilities — policy domains registered with the sandbox."""

from safeact.security.capabilities.base import BaseCapability, Capability
from safeact.security.capabilities.filesystem import FilesystemCapability
from safeact.security.capabilities.network import NetworkCapability
from safeact.security.capabilities.scheduler import JobScheduler, ScheduledJob, SchedulerCapability
from safeact.security.capabilities.shell import ShellCapability

__all__ = [
    "Capability",
    "BaseCapability",
    "FilesystemCapability",
    "ShellCapability",
    "NetworkCapability",
    "SchedulerCapability",
    "JobScheduler",
    "ScheduledJob",
]
