"""Leaveflow — leave-request workflow engine."""
