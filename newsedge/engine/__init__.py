"""Pure scoring and evaluation engines."""
