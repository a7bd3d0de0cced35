"""HTTP service exposing the weather layer merge engine."""
