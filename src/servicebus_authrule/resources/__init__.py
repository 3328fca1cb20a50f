"""Queue authorization rule resource: identifiers, validation and handlers."""
