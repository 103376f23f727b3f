"""Receipt rendering."""
