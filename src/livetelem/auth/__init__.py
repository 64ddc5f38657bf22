"""Bearer credential storage."""
