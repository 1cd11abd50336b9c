"""Communities: the owners of campaigns."""
