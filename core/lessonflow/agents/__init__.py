"""Agents built on lessonflow graphs."""
