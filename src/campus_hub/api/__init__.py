"""HTTP API for the Campus Hub backend."""
