"""Application services built on the domain rules."""
