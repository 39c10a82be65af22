"""Session tokens and request authorization."""
