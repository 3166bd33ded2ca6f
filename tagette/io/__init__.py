"""Output writers for batch extraction runs."""
