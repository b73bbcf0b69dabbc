"""Tests for the kort command line tool."""
