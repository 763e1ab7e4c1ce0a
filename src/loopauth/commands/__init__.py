"""Built-in CLI command groups for loopauth."""
