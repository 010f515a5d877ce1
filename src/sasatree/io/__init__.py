"""Structure loading and comparison reports."""
