"""Leave management workflow engine."""
