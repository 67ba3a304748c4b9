"""Configuration loading (YAML, .env, environment) and the typed client config."""
