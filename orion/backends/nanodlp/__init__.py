"""NanoDLP polling backend."""
