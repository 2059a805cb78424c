"""Tests for pydlinkdsp."""
