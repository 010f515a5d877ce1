"""Identities, nodes and the owned tree."""
