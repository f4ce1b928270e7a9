"""Command-line classification and project configuration."""
