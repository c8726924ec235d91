"""Tests for the dump service transport."""
