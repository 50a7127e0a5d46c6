"""Storyboard Studio: prompt-to-storyboard creation service."""
