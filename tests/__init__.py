"""Tests for kort."""
