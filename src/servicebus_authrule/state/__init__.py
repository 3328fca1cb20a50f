"""Local persistence of resource state for the CLI."""
