"""Click commands and operator prompts."""
