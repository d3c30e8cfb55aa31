"""HTTP integration for the response cache."""
