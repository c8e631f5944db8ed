"""Test support utilities for ysql-upgrade tests."""
