"""
Test Tools Package
Tests for the tools module (time windows, notifications, sweep scheduler)
"""
