"""Terminal shell for the bookmark view."""
