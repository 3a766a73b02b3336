"""Database engine, session and ORM models."""
