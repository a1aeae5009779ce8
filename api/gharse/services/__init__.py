"""Order workflow services and their side effects."""
