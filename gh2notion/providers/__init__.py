"""Remote collaborators: the GitHub issue source and the Notion page store."""
