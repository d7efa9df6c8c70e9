"""Command line front end for tap_core."""
