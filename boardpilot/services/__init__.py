"""External collaborators: monday.com transport, language oracle, context."""
