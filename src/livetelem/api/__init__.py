"""REST collaborators used by the polling fallback and the CLI."""
