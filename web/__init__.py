"""web/ -- Server-rendered HTML pages."""
