"""Behavioral abuse detection for authenticated web traffic."""
