"""Audit log service: recording, subject resolution, retention and export."""
