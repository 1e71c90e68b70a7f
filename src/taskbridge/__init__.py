"""Two-way task synchronisation between a Notion database and a Todoist project."""

__version__ = "0.4.0"
