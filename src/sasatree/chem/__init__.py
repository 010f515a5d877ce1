"""Atom classification and radii."""
