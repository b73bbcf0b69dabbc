"""Command line tool for kort."""
