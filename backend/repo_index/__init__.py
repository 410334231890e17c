"""repo-index: semantic search over code and docs from GitHub repositories."""
