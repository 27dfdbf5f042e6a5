"""Remote job execution: submission and bounded status polling."""
