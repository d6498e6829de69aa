"""Bounded-concurrency scheduler for AI course content generation."""
