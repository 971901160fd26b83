"""Field and encoding utilities."""
