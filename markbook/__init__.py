"""
Markbook Package
================

Bulk-edit and import engine for a teacher's markbook, plus the Flask API it
talks to.

Structure:
- services/: paste parser, score grid, roster and score importers, API client
- routes/: API route blueprints
- store.py: JSON-file store behind the API
- config.py: Configuration management
"""

from .config import config, Config

__version__ = "1.0.0"

__all__ = ['config', 'Config']
