"""Batch input, scheduling, artifact output and progress reporting."""
