"""Tests for the template renderer."""
