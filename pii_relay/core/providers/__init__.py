"""Model collaborator providers."""
