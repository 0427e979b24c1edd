"""Anime theme guessing game for Discord."""
