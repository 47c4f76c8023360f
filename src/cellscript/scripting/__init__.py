"""Rule script sandbox, compilation and per-thread execution contexts."""
