"""Repository interfaces and their implementations."""
