"""Social Publisher command line interface."""
