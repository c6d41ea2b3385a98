"""core/ -- Configuration shared by every layer."""
