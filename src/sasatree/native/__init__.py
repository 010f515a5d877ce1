"""Native result trees: traversal contract, owning handle and the bundled engine."""
