"""Tests for the analytics query compiler and its collaborators."""
