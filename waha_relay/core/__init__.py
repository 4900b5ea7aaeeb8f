"""Core runtime plumbing."""
