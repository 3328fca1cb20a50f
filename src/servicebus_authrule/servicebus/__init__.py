"""Service Bus management API access and replication tracking."""
