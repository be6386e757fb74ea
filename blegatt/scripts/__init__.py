"""Command line utilities built on blegatt."""
