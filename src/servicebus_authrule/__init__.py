"""Lifecycle management for Azure Service Bus queue authorization rules."""

__version__ = "0.1.0"
