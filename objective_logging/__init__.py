"""CSV metrics logging for objective evaluation."""
