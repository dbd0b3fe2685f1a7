# src/checklist_engine/__init__.py

"""Recurring checklist scheduling and instance-lifecycle engine."""

__version__ = "0.1.0"
