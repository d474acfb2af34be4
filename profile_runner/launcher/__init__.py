"""Worker subprocess launching, monitoring and termination."""
