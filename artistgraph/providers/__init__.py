"""Concrete adapters: music-metadata clients and SQLite stores."""
