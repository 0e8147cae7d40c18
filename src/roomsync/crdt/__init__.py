"""Shared-state collaborators: the Automerge document and the awareness store."""
