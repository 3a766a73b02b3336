"""Domain layer for Custody Tracker.

Contains pure business logic, transfer rules, and typed errors.
This layer has no dependencies on infrastructure concerns.
"""
