"""Developer tools for PayloadLink."""
