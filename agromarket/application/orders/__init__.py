"""Order-view use cases."""
