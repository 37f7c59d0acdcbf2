"""HTTP interface for roadmap generation."""
