"""
Markbook Services
=================

Client-side logic for the markbook.

Services:
- paste_parser: spreadsheet paste tokenizer (bulk rows and grid columns)
- score_grid: live score grid with create/update/delete reconciliation
- score_import: bulk score import preview and submit
- roster_import: bulk and single student roster import
- api_client: HTTP client and session for the markbook API
- analytics, roster_views: read-only views over roster and scores
"""

# Services are imported directly when needed to avoid circular imports
# Example: from markbook.services.score_grid import ScoreGrid

__all__ = [
    'paste_parser',
    'score_grid',
    'score_import',
    'roster_import',
    'api_client',
    'query_cache',
    'analytics',
    'roster_views',
]
