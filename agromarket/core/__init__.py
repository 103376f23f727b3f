"""Core infrastructure: configuration, errors, HTTP and notifications."""
