"""SMTP profiler job service."""
