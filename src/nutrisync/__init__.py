"""NutriSync - offline-first sync for a personal nutrition tracker."""

__version__ = "1.0.0"
