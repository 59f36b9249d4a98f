"""Storage-node agent simulator."""
