"""peertunnel command line interface."""
