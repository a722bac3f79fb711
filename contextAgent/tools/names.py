"""Names of built-in tools referenced by context management."""

SHELL_TOOL_NAME = "run_bash_command"
GREP_TOOL_NAME = "search_file"
READ_FILE_TOOL_NAME = "read_file"
SEARCH_TOOLS_TOOL_NAME = "search_tools"
