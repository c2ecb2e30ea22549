"""Tests for flux-bootstrap."""
