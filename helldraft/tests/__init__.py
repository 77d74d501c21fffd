"""Test suite for Helldraft."""
