"""Pure transformations from cached records to display models."""
