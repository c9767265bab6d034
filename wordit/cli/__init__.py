"""WordIt command line interface."""
