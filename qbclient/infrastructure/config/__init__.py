"""Configuration loading (environment, .env, YAML)."""
