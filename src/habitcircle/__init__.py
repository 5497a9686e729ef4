"""Habit Circle: habit tracking with friends."""

__version__ = "0.1.0"
